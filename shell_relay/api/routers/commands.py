# ruff: noqa: B008
"""Slash-command webhook endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Form, HTTPException, Request, Response, status

from shell_relay.api.context import AppContext, get_app_context
from shell_relay.relay import ExecutionRequest

router = APIRouter(tags=["commands"])


def strip_command_marker(text: str, marker: str = "$") -> str:
    """Drop exactly one leading ``marker`` and surrounding whitespace."""

    if marker and text.startswith(marker):
        text = text[len(marker) :]
    return text.strip()


@router.post("/", status_code=status.HTTP_200_OK)
def receive_command(
    request: Request,
    text: str = Form(""),
    channel_id: str = Form(""),
    user_id: str = Form(""),
    team_id: str = Form(""),
    response_url: str = Form(""),
    context: AppContext = Depends(get_app_context),
) -> Response:
    request.state.channel_id = channel_id or None
    request.state.user_id = user_id or None
    if not text or not channel_id or not user_id:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail="Missing required fields")
    command = strip_command_marker(text, context.command_marker)
    if not command:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail="Missing command")
    execution = ExecutionRequest(
        command=command,
        channel_id=channel_id,
        user_id=user_id,
        team_id=team_id or None,
        response_url=response_url or None,
    )
    context.dispatcher.submit(execution)
    request.state.execution = execution
    return Response(status_code=status.HTTP_200_OK)


__all__ = ["router", "strip_command_marker"]
