"""
Pose sourcing.

This package defines a model-agnostic PoseFrame and the PoseSource capability
(live MediaPipe estimator, synthetic fallback generator) so the rest of the app
never touches a specific pose stack.
"""
