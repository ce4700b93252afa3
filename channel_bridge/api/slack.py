"""Slack endpoints: Events API, interactivity, and the OAuth redirect.

Requests are acknowledged right away; the actual work runs as a
background task so Slack never waits on Telegram.
"""

import hashlib
import hmac
import json
import logging
import time
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from ..core.config import get_settings
from ..core.dependencies import BridgeServices, ServicesDep
from ..core.exceptions import BridgeError
from ..integrations.slack import SlackClient
from ..integrations.slack.blocks import BOT_TOKEN_ACTION, BOT_TOKEN_BLOCK, BOT_TOKEN_SUBMISSION
from ..schemas.events import SlackEventKind, SlackInboundEvent

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/bot/slack", tags=["slack"])


# =============================================================================
# SIGNATURE VERIFICATION
# =============================================================================


def verify_slack_signature(
    body: bytes,
    timestamp: str,
    signature: str,
    signing_secret: str | None,
    now: float | None = None,
) -> bool:
    """
    Verify Slack request signature using HMAC-SHA256.

    See: https://api.slack.com/authentication/verifying-requests-from-slack
    """
    if not signing_secret:
        logger.warning("Slack signing secret not configured")
        return False

    # Check timestamp to prevent replay attacks (5 minutes)
    try:
        request_timestamp = int(timestamp)
        if abs((now or time.time()) - request_timestamp) > 60 * 5:
            logger.warning("Slack request timestamp too old")
            return False
    except ValueError:
        return False

    sig_basestring = f"v0:{timestamp}:{body.decode()}"
    expected_sig = "v0=" + hmac.new(
        signing_secret.encode(),
        sig_basestring.encode(),
        hashlib.sha256
    ).hexdigest()

    return hmac.compare_digest(expected_sig, signature)


async def _require_signature(
    services: BridgeServices,
    body: bytes,
    timestamp: str | None,
    signature: str | None,
) -> None:
    if not signature or not timestamp:
        await services.error_sink.record("Missing Slack signature or timestamp")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Slack signature or timestamp",
        )

    if not verify_slack_signature(body, timestamp, signature, settings.slack_signing_secret):
        await services.error_sink.record("Slack signature verification failed")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Verification failed",
        )


# =============================================================================
# DISPATCH
# =============================================================================


async def dispatch_slack_event(services: BridgeServices, event: SlackInboundEvent) -> None:
    try:
        if event.kind == SlackEventKind.MESSAGE:
            await services.router.route_from_slack(event)
        elif event.kind == SlackEventKind.DIRECT_MESSAGE:
            await services.setup.handle_direct_message(event)
        elif event.kind == SlackEventKind.MEMBER_JOINED:
            await services.setup.handle_member_joined(event)
    except Exception as e:
        await services.error_sink.record(e)


async def dispatch_slack_action(
    services: BridgeServices,
    action_id: str,
    team_id: str,
    user_id: str,
    channel_id: str | None,
    trigger_id: str | None,
) -> None:
    try:
        await services.setup.handle_action(action_id, team_id, user_id, channel_id, trigger_id)
    except Exception as e:
        await services.error_sink.record(e)


async def dispatch_token_submission(
    services: BridgeServices,
    team_id: str,
    user_id: str,
    channel_id: str | None,
    token: str,
) -> None:
    try:
        await services.setup.complete_token_submission(team_id, user_id, channel_id, token)
    except Exception as e:
        await services.error_sink.record(e)


# =============================================================================
# ROUTES
# =============================================================================


@router.post("/events")
async def handle_slack_events(
    request: Request,
    background_tasks: BackgroundTasks,
    services: ServicesDep,
    x_slack_signature: Annotated[str | None, Header()] = None,
    x_slack_request_timestamp: Annotated[str | None, Header()] = None,
):
    """Slack Events API endpoint."""
    body = await request.body()
    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")

    if payload.get("type") == "url_verification":
        return PlainTextResponse(payload.get("challenge", ""))

    await _require_signature(services, body, x_slack_request_timestamp, x_slack_signature)

    team_id = payload.get("team_id") or (payload.get("team") or {}).get("id") or ""
    logger.info(f"Received event from Slack team ID: {team_id}")

    event = SlackInboundEvent.from_payload(payload.get("event") or {}, team_id)
    if event.kind != SlackEventKind.IGNORED:
        background_tasks.add_task(dispatch_slack_event, services, event)

    return Response(status_code=status.HTTP_200_OK)


@router.post("/actions")
async def handle_slack_actions(
    request: Request,
    background_tasks: BackgroundTasks,
    services: ServicesDep,
    x_slack_signature: Annotated[str | None, Header()] = None,
    x_slack_request_timestamp: Annotated[str | None, Header()] = None,
):
    """Slack interactivity endpoint: button clicks and modal submissions."""
    body = await request.body()
    await _require_signature(services, body, x_slack_request_timestamp, x_slack_signature)

    form_data = await request.form()
    try:
        payload = json.loads(form_data.get("payload", ""))
    except ValueError as e:
        await services.error_sink.record(e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")

    team_id = (payload.get("team") or {}).get("id", "")
    user_id = (payload.get("user") or {}).get("id", "")
    channel_id = (payload.get("channel") or {}).get("id")

    if payload.get("type") == "block_actions":
        actions = payload.get("actions") or []
        if actions:
            background_tasks.add_task(
                dispatch_slack_action,
                services,
                actions[0].get("action_id", ""),
                team_id,
                user_id,
                channel_id,
                payload.get("trigger_id"),
            )

    elif payload.get("type") == "view_submission":
        view = payload.get("view") or {}
        if view.get("callback_id") == BOT_TOKEN_SUBMISSION:
            values = (view.get("state") or {}).get("values") or {}
            token = ((values.get(BOT_TOKEN_BLOCK) or {}).get(BOT_TOKEN_ACTION) or {}).get("value") or ""
            token = token.strip()

            errors = services.setup.validate_token_submission(token)
            if errors:
                return JSONResponse(errors)

            try:
                metadata = json.loads(view.get("private_metadata") or "{}")
            except ValueError:
                metadata = {}
            background_tasks.add_task(
                dispatch_token_submission,
                services,
                team_id,
                user_id,
                metadata.get("channel_id") or None,
                token,
            )

    return Response(status_code=status.HTTP_200_OK)


@router.get("/oauth_redirect")
async def slack_oauth_redirect(services: ServicesDep, code: str | None = None):
    """Finish the Slack app install and store the workspace credentials."""
    if not code:
        await services.error_sink.record("Missing code parameter in OAuth redirect")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing code parameter")

    if not settings.slack_enabled:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Slack OAuth is not configured",
        )

    try:
        result = await SlackClient.exchange_oauth_code(
            services.http_client,
            settings.slack_client_id,
            settings.slack_client_secret,
            code,
        )
        team = result.get("team") or {}
        await services.workspaces.record_install(
            team_id=team["id"],
            team_name=team.get("name"),
            access_token=result["access_token"],
            bot_user_id=result["bot_user_id"],
        )
    except (BridgeError, KeyError) as e:
        await services.error_sink.record(e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="OAuth access error",
        )

    return PlainTextResponse("App installed successfully!")
