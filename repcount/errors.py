"""
Error taxonomy for pose sourcing.

Only CaptureDeviceFailure is fatal for a session. The other failures are caught
at the orchestrator boundary and turned into SourceStatus flags.
"""


class RepCountError(Exception):
	"""Base class for all repcount errors."""


class EstimatorInitFailure(RepCountError):
	"""The live pose estimator could not be loaded. Triggers permanent fallback."""


class CaptureDeviceFailure(RepCountError):
	"""The camera could not be opened or stopped delivering frames. Terminal for the session."""


class FrameInferenceFailure(RepCountError):
	"""Inference on a submitted frame raised. Triggers permanent fallback."""


class WorkoutStateError(RepCountError):
	"""Operation not valid for the current workout state (e.g. no workout running)."""
