class WorkspaceError(RuntimeError):
    pass


class ValidationError(WorkspaceError):
    pass


class NotFoundError(WorkspaceError):
    pass


class ConflictError(WorkspaceError):
    pass


class ImportLimitError(WorkspaceError):
    pass
