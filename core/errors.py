# core/errors.py
class LayerFlowError(Exception):
    pass


class InvalidInputError(LayerFlowError):
    pass


class NotFoundError(LayerFlowError):
    pass


class DetectionNotFoundError(NotFoundError):
    pass


class DetectionUnavailableError(LayerFlowError):
    pass


class RenderFailureError(LayerFlowError):
    pass


class CleanupFailureError(LayerFlowError):
    pass


class BrowserStartError(LayerFlowError):
    pass


class BrowserHealthError(LayerFlowError):
    pass


class InvalidTransitionError(LayerFlowError):
    pass
