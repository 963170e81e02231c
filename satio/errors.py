class RewardServiceError(Exception):
    pass


class MissingFieldError(RewardServiceError):
    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Missing required field: {field}")

    @property
    def code(self) -> str:
        return f"missing_{self.field}"


class UnauthorizedError(RewardServiceError):
    pass


class StorageError(RewardServiceError):
    pass
