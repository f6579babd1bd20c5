from typing import List

from fastapi import APIRouter, Depends, status

from shortlink_app.dependencies import get_link_service, get_user_service
from shortlink_app.exceptions import ForbiddenError
from shortlink_app.schemas.link import (
    GenerateResponse,
    LinkCreate,
    LinkDetails,
    LinkSummary,
    LinkUpdate,
    MessageResponse,
)
from shortlink_app.security import Identity, get_current_identity
from shortlink_app.services.entitlements import consumes_credits
from shortlink_app.services.link_service import LinkService
from shortlink_app.services.user_service import UserService

router = APIRouter(tags=["links"])

PREMIUM_FEATURES_MESSAGE = "Premium plan required for these features."


@router.post("/generate", response_model=GenerateResponse, status_code=status.HTTP_201_CREATED)
async def generate_short_url(
    payload: LinkCreate,
    identity: Identity = Depends(get_current_identity),
    links: LinkService = Depends(get_link_service),
    users: UserService = Depends(get_user_service)
):
    """
    Create a short link.

    A plain request (no premium features) for a destination the caller
    already shortened returns the existing code and costs no credit.
    """
    charged = consumes_credits(identity.plan_tier)
    if charged:
        users.ensure_credits(identity.owner_id)

    requested = payload.premium_fields()
    if requested and not identity.is_premium:
        raise ForbiddenError(PREMIUM_FEATURES_MESSAGE)

    if not requested:
        existing = await links.find_existing(str(payload.original_url), identity.owner_id)
        if existing:
            return GenerateResponse(
                message="You already have a short URL for this destination.",
                short_code=existing,
                created=False,
            )

    # The credit is spent before the link exists; a failed create refunds it
    if charged:
        users.consume_credit(identity.owner_id)

    try:
        short_code = await links.create(
            owner_id=identity.owner_id,
            original_url=str(payload.original_url),
            custom_alias=payload.custom_alias,
            expires_at=payload.expires_at,
            activates_at=payload.activates_at,
            password=payload.password,
            device_urls=payload.device_urls.model_dump() if payload.device_urls else None,
        )
    except Exception:
        if charged:
            users.refund_credit(identity.owner_id)
        raise

    return GenerateResponse(message="Short URL generated", short_code=short_code, created=True)


@router.patch("/update/{short_code}", response_model=MessageResponse)
async def update_short_url(
    short_code: str,
    payload: LinkUpdate,
    identity: Identity = Depends(get_current_identity),
    links: LinkService = Depends(get_link_service)
):
    # Ownership first, so strangers always see 404
    await links.details(short_code, identity.owner_id)

    if payload.premium_fields() and not identity.is_premium:
        raise ForbiddenError(PREMIUM_FEATURES_MESSAGE)

    await links.update(short_code, identity.owner_id, payload.model_dump(exclude_unset=True))
    return MessageResponse(message="URL updated successfully")


@router.delete("/delete/{short_code}", response_model=MessageResponse)
async def delete_short_url(
    short_code: str,
    identity: Identity = Depends(get_current_identity),
    links: LinkService = Depends(get_link_service)
):
    await links.delete(short_code, identity.owner_id)
    return MessageResponse(message="Short URL deleted")


@router.get("/details/{short_code}", response_model=LinkDetails)
async def get_link_details(
    short_code: str,
    identity: Identity = Depends(get_current_identity),
    links: LinkService = Depends(get_link_service)
):
    return await links.details(short_code, identity.owner_id)


@router.get("/urls", response_model=List[LinkSummary])
async def list_links(
    identity: Identity = Depends(get_current_identity),
    links: LinkService = Depends(get_link_service)
):
    """All links of the caller, oldest first"""
    return await links.list_by_owner(identity.owner_id)
