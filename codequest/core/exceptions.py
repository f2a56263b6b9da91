from fastapi import HTTPException, status


class CodeQuestError(Exception):
    """Base exception for CodeQuest."""

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        self.code = code
        super().__init__(message)


class InvalidActionError(CodeQuestError):
    """Action not allowed in the current game mode."""

    pass


class ChallengeNotFoundError(CodeQuestError):
    """No catalog entry with the requested id."""

    pass


# HTTP Exceptions
def not_found(detail: str = "Resource not found") -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


def bad_request(detail: str = "Bad request") -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def conflict(detail: str = "Conflict") -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)
