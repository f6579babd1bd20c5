from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from fastapi.responses import PlainTextResponse, RedirectResponse

from shortlink_app.config import settings
from shortlink_app.dependencies import get_classifier, get_queue, get_redirect_service
from shortlink_app.exceptions import ForbiddenError, NotFoundError
from shortlink_app.hit_processor.click_worker import publish_click
from shortlink_app.queue.strategies import QueueStrategy
from shortlink_app.schemas.link import MessageResponse
from shortlink_app.services.click_classifier import ClickClassifier, RequestMeta
from shortlink_app.services.redirect_service import RedirectService, RedirectState

router = APIRouter(tags=["redirect"])


@router.get("/redirect/{short_code}")
async def redirect_to_destination(
    short_code: str,
    request: Request,
    background_tasks: BackgroundTasks,
    redirects: RedirectService = Depends(get_redirect_service),
    classifier: ClickClassifier = Depends(get_classifier),
    queue: QueueStrategy = Depends(get_queue)
):
    """
    Redirect a visitor to the link's destination.

    Flow:
    1. Resolve the key (short code or alias) through the cache
    2. Paused / not-yet-active -> 403, unknown or expired -> 404 (plain text)
    3. Bump the click counter
    4. Premium owners: classify the click, set the visitor cookie and
       queue the event in a background task that runs after the response
    """
    decision = await redirects.resolve(
        short_code,
        query_params=dict(request.query_params),
        user_agent=request.headers.get("user-agent"),
    )

    if decision.state == RedirectState.NOT_FOUND:
        return PlainTextResponse(decision.message, status_code=status.HTTP_404_NOT_FOUND)
    if decision.state == RedirectState.BLOCKED:
        return PlainTextResponse(decision.message, status_code=status.HTTP_403_FORBIDDEN)

    link = decision.link
    await redirects.links.increment_clicks(link.short_code)

    response = RedirectResponse(url=decision.destination, status_code=status.HTTP_302_FOUND)

    if decision.owner_premium:
        classification = classifier.classify(
            RequestMeta.from_request(request),
            decision.destination,
            link.short_code,
            link.id,
        )
        if classification.cookie:
            response.set_cookie(
                classification.cookie.name,
                classification.cookie.value,
                max_age=classification.cookie.max_age,
                httponly=True,
                samesite="lax",
                secure=settings.is_production,
            )
        background_tasks.add_task(publish_click, queue, classification.event)

    return response


@router.get("/{short_code}", response_model=MessageResponse)
async def check_short_code(
    short_code: str,
    redirects: RedirectService = Depends(get_redirect_service)
):
    """Pre-check used by clients before navigating; never counts a click"""
    decision = await redirects.resolve(short_code)

    if decision.state == RedirectState.NOT_FOUND:
        raise NotFoundError(decision.message)
    if decision.state == RedirectState.BLOCKED:
        raise ForbiddenError(decision.message)

    return MessageResponse(message=decision.message)
