from typing import List, Optional

class FlowException(Exception):
    """
    This is the base exception for all flow exceptions
    """
    def __init__(self, message: str, status_code: int):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message, self.status_code)

class FlowServiceException(FlowException):
    """
    This is the exception for all flow service exceptions
    """
    def __init__(self, message: str):
        self.message = message
        self.status_code = 500
        super().__init__(message=self.message, status_code=self.status_code)

class FlowNotFoundException(FlowException):
    """
    This is the exception when flow is not found
    """
    def __init__(self, message: str):
        self.message = message
        self.status_code = 404
        super().__init__(message=self.message, status_code=self.status_code)

class FlowValidationException(FlowException):
    """
    This is the exception for flow validation errors.
    `issues` holds the per-field problems found at explicit save time.
    """
    def __init__(self, message: str, issues: Optional[List] = None):
        self.message = message
        self.status_code = 400
        self.issues = issues or []
        super().__init__(message=self.message, status_code=self.status_code)

class UnknownBlockTypeException(FlowValidationException):
    """
    This is the exception when a node type is absent from the block registry
    """
    def __init__(self, block_type: str):
        self.block_type = block_type
        super().__init__(message=f"Tipo de bloco não encontrado: {block_type}")

class FlowConflictException(FlowException):
    """
    This is the exception when the Flow API refuses activation because the
    organization/channel already has a different active flow.
    The message is the server's reason, verbatim.
    """
    def __init__(self, message: str):
        self.message = message
        self.status_code = 409
        super().__init__(message=self.message, status_code=self.status_code)

class FlowApiException(FlowException):
    """
    This is the exception for failed calls to the external Flow API or reference APIs
    """
    def __init__(self, message: str, upstream_status: Optional[int] = None):
        self.message = message
        self.status_code = 502
        self.upstream_status = upstream_status
        super().__init__(message=self.message, status_code=self.status_code)

class EditorSessionException(FlowException):
    """
    This is the exception for operations on a closed, disposed or empty editor session
    """
    def __init__(self, message: str):
        self.message = message
        self.status_code = 409
        super().__init__(message=self.message, status_code=self.status_code)
