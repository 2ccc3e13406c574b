"""Translation of service exceptions into HTTP errors."""

from contextlib import contextmanager

from fastapi import HTTPException

from loreline.services.errors import ConflictError


@contextmanager
def service_errors():
    """ConflictError -> 409, LookupError -> 404, ValueError -> 400."""
    try:
        yield
    except ConflictError as exc:
        raise HTTPException(409, str(exc)) from exc
    except LookupError as exc:
        raise HTTPException(404, str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc


def list_meta(query, total: int) -> dict:
    """Echo the parsed list query back alongside the total row count."""
    return {**query.model_dump(by_alias=True, exclude_none=True, mode="json"), "total": total}
