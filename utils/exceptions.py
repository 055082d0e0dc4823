# cam_explainer/utils/exceptions.py


class ExplainerError(Exception):
    """
    Base class for every error raised by the explanation pipeline.
    """


class InvalidArgument(ExplainerError, ValueError):
    """
    Caller-correctable input: out-of-range class index, opacity outside [0,1],
    unknown layer id, non-positive target resolution.
    """


class DegenerateInput(ExplainerError, ValueError):
    """
    Feature map or gradient with zero spatial extent.
    """


class ContractViolation(ExplainerError, RuntimeError):
    """
    The inference engine returned tensors that break the pairing contract
    (e.g. feature map and gradient with different shapes).
    """


class InferenceError(ExplainerError, RuntimeError):
    """
    Wraps failures raised by the underlying framework during a forward or
    backward pass.
    """
