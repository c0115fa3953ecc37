"""
Onboardflow - A resumable workflow engine for human-in-the-loop payment onboarding.

Steps connected by conditional routing, persisted per thread in checkpoints,
suspending for external input and resuming exactly where they left off.
"""

__version__ = "1.0.0"
