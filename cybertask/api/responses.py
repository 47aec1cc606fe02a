"""
Response envelope for the HTTP layer.

Every endpoint answers with `{"success": bool, "data"?: ..., "error"?: ...}`.
Domain error kinds map to fixed HTTP status codes; anything that is not a
DomainError is not handled here and should surface as a 500.
"""

from typing import Any, Dict, List, Tuple

from pydantic import BaseModel

from cybertask.domain.errors import DomainError, ErrorKind

STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONSTRAINT_VIOLATION: 400,
    ErrorKind.INVALID_TRANSITION: 400,
    ErrorKind.CYCLE_DETECTED: 400,
    ErrorKind.CROSS_PROJECT_DEPENDENCY: 400,
    ErrorKind.NOT_A_MEMBER: 400,
    ErrorKind.TASK_IMMUTABLE: 400,
    ErrorKind.CANNOT_REMOVE_OWNER: 403,
    ErrorKind.UNAUTHORIZED: 403,
}

# (method, path) -> TaskService operation
ROUTES: Dict[Tuple[str, str], str] = {
    ("GET", "/tasks"): "list_tasks_for_user",
    ("POST", "/tasks"): "create_task",
    ("PUT", "/tasks/:id"): "update_task",
    ("DELETE", "/tasks/:id"): "delete_task",
    ("POST", "/tasks/:id/assign"): "assign_task",
    ("POST", "/tasks/:id/unassign"): "unassign_task",
    ("POST", "/tasks/:id/archive"): "archive_task",
    ("POST", "/tasks/:id/dependencies"): "add_dependency",
    ("DELETE", "/tasks/:id/dependencies/:depId"): "remove_dependency",
    ("POST", "/tasks/:id/comments"): "add_comment",
    ("POST", "/projects/:id/members"): "add_member",
    ("DELETE", "/projects/:id/members/:userId"): "remove_member",
}


def status_for(error: DomainError) -> int:
    return STATUS_BY_KIND[error.kind]


def serialize(data: Any) -> Any:
    """Pydantic models (and lists of them) to camelCase JSON-ready values"""
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", by_alias=True)
    if isinstance(data, (list, tuple)):
        return [serialize(item) for item in data]
    if isinstance(data, dict):
        return {key: serialize(value) for key, value in data.items()}
    return data


def ok(data: Any = None, status: int = 200) -> Tuple[int, Dict[str, Any]]:
    body: Dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = serialize(data)
    return status, body


def error_response(error: DomainError) -> Tuple[int, Dict[str, Any]]:
    return status_for(error), {"success": False, "error": error.to_dict()}


async def respond(operation, *args, success_status: int = 200, **kwargs) -> Tuple[int, Dict[str, Any]]:
    """
    Await a TaskService operation and wrap the outcome in the envelope.

    Only DomainErrors are translated; other exceptions propagate.
    """
    try:
        result = await operation(*args, **kwargs)
    except DomainError as e:
        return error_response(e)
    return ok(result, success_status)


def route_table() -> List[str]:
    """Human readable route listing"""
    return [f"{method} {path} -> {op}" for (method, path), op in ROUTES.items()]
