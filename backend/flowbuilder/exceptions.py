"""Domain errors raised by the checkpoint layer and the tool dispatcher."""


class CheckpointError(Exception):
    """Base class for checkpoint lifecycle errors."""


class CheckpointNotFoundError(CheckpointError):
    def __init__(self, checkpoint_id: str):
        super().__init__(f"Checkpoint {checkpoint_id} not found")
        self.checkpoint_id = checkpoint_id


class CheckpointStateError(CheckpointError):
    """Raised when a terminal checkpoint is asked to commit or roll back again."""

    def __init__(self, checkpoint_id: str, status: str, action: str):
        super().__init__(f"Cannot {action} checkpoint {checkpoint_id}: status is {status}")
        self.checkpoint_id = checkpoint_id
        self.status = status


class UndoError(CheckpointError):
    """A compensating action could not be computed or applied."""


class MissingPreImageError(UndoError):
    def __init__(self, operation: str, table_name: str):
        super().__init__(f"Cannot undo {operation} on {table_name}: no previous data stored")


class UnknownOperationError(UndoError):
    def __init__(self, operation):
        super().__init__(f"Unknown operation: {operation}")


class UnknownToolError(KeyError):
    def __init__(self, tool_name: str):
        super().__init__(tool_name)
        self.tool_name = tool_name

    def __str__(self) -> str:
        return f"Unknown tool: {self.tool_name}"
