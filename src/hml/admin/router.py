"""Admin router — users, admin accounts, transactions, activity and stats under /api/admin."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hml.admin.audit import list_admin_logs
from hml.admin.roles import effective_permissions
from hml.admin.schemas import (
    AdminAccountResponse,
    AdminCreateRequest,
    AdminLogListResponse,
    AdminLogResponse,
    AdminTransactionListResponse,
    AdminTransactionResponse,
    AdminUpdateRequest,
    AdminUserCreateRequest,
    AdminUserListResponse,
    AdminUserResponse,
    AdminUserUpdateRequest,
    BanRequest,
    Pagination,
    StatsResponse,
    TransactionUser,
)
from hml.admin.service import (
    admin_create_user,
    admin_delete_user,
    admin_update_user,
    ban_user,
    delete_transaction,
    get_stats,
    get_transaction,
    get_user_or_404,
    grant_admin,
    list_admins,
    list_transactions,
    list_users,
    revoke_admin,
    unban_user,
    update_admin,
    users_by_email,
)
from hml.auth.dependencies import require_master_admin, require_permission
from hml.billing.premium import is_effectively_premium
from hml.database import get_session
from hml.db.models import BillingTransaction, User

router = APIRouter(prefix="/api/admin", tags=["Admin"])


def _user_response(user: User) -> AdminUserResponse:
    return AdminUserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        username=user.username,
        username_is_custom=user.username_is_custom,
        bio=user.bio,
        profile_image=user.profile_image,
        is_published=user.is_published,
        is_admin=user.is_admin,
        admin_role=user.admin_role,
        is_banned=user.is_banned,
        ban_reason=user.ban_reason,
        banned_at=user.banned_at,
        banned_by=user.banned_by,
        is_premium=is_effectively_premium(user),
        stored_is_premium=user.is_premium,
        premium_plan_type=user.premium_plan_type,
        premium_started_at=user.premium_started_at,
        premium_expires_at=user.premium_expires_at,
        stripe_subscription_id=user.stripe_subscription_id,
        created_at=user.created_at,
        last_login=user.last_login,
    )


def _admin_response(user: User) -> AdminAccountResponse:
    return AdminAccountResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        username=user.username,
        admin_role=user.admin_role,
        permissions=sorted(effective_permissions(user)),
        explicit_permissions=user.admin_permissions,
        admin_created_at=user.admin_created_at,
        admin_created_by=user.admin_created_by,
    )


def _transaction_response(txn: BillingTransaction, user: User | None = None) -> AdminTransactionResponse:
    return AdminTransactionResponse(
        id=txn.id,
        email=txn.email,
        user_id=txn.user_id,
        plan_type=txn.plan_type,
        amount=txn.amount,
        currency=txn.currency,
        status=txn.status,
        event_type=txn.event_type,
        external_id=txn.external_id,
        gateway=txn.gateway,
        created_at=txn.created_at,
        user=TransactionUser(
            id=user.id, username=user.username, name=user.name, profile_image=user.profile_image
        )
        if user is not None
        else None,
    )


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.get("/users", response_model=AdminUserListResponse)
async def get_users(
    search: str | None = Query(None, max_length=320),
    banned: bool | None = Query(None),
    premium: bool | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    _admin: User = Depends(require_permission("view_users")),
    db: AsyncSession = Depends(get_session),
) -> AdminUserListResponse:
    users, pagination = await list_users(db, search=search, banned=banned, premium=premium, page=page, limit=limit)
    return AdminUserListResponse(users=[_user_response(u) for u in users], pagination=Pagination(**pagination))


@router.get("/users/{user_id}", response_model=AdminUserResponse)
async def get_user(
    user_id: int,
    _admin: User = Depends(require_permission("view_users")),
    db: AsyncSession = Depends(get_session),
) -> AdminUserResponse:
    return _user_response(await get_user_or_404(db, user_id))


@router.post("/users", response_model=AdminUserResponse, status_code=201)
async def create_user(
    body: AdminUserCreateRequest,
    admin: User = Depends(require_permission("manage_users")),
    db: AsyncSession = Depends(get_session),
) -> AdminUserResponse:
    user = await admin_create_user(
        db, admin, email=str(body.email), password=body.password, name=body.name, username=body.username
    )
    await db.commit()
    return _user_response(user)


@router.patch("/users/{user_id}", response_model=AdminUserResponse)
async def update_user(
    user_id: int,
    body: AdminUserUpdateRequest,
    admin: User = Depends(require_permission("manage_users")),
    db: AsyncSession = Depends(get_session),
) -> AdminUserResponse:
    user = await admin_update_user(db, admin, user_id, body.model_dump(exclude_unset=True))
    await db.commit()
    return _user_response(user)


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: int,
    admin: User = Depends(require_permission("manage_users")),
    db: AsyncSession = Depends(get_session),
) -> dict[str, bool]:
    await admin_delete_user(db, admin, user_id)
    await db.commit()
    return {"success": True}


@router.post("/users/{user_id}/ban", response_model=AdminUserResponse)
async def ban(
    user_id: int,
    body: BanRequest | None = None,
    admin: User = Depends(require_permission("ban_users")),
    db: AsyncSession = Depends(get_session),
) -> AdminUserResponse:
    user = await ban_user(db, admin, user_id, body.ban_reason if body else None)
    await db.commit()
    return _user_response(user)


@router.delete("/users/{user_id}/ban", response_model=AdminUserResponse)
async def unban(
    user_id: int,
    admin: User = Depends(require_permission("ban_users")),
    db: AsyncSession = Depends(get_session),
) -> AdminUserResponse:
    user = await unban_user(db, admin, user_id)
    await db.commit()
    return _user_response(user)


# ---------------------------------------------------------------------------
# Admin accounts (master admin only)
# ---------------------------------------------------------------------------


@router.get("/admins", response_model=list[AdminAccountResponse])
async def get_admins(
    _master: User = Depends(require_master_admin),
    db: AsyncSession = Depends(get_session),
) -> list[AdminAccountResponse]:
    return [_admin_response(u) for u in await list_admins(db)]


@router.post("/admins", response_model=AdminAccountResponse, status_code=201)
async def add_admin(
    body: AdminCreateRequest,
    master: User = Depends(require_master_admin),
    db: AsyncSession = Depends(get_session),
) -> AdminAccountResponse:
    user = await grant_admin(db, master, body.user_id, body.admin_role, body.permissions)
    await db.commit()
    return _admin_response(user)


@router.put("/admins/{user_id}", response_model=AdminAccountResponse)
async def edit_admin(
    user_id: int,
    body: AdminUpdateRequest,
    master: User = Depends(require_master_admin),
    db: AsyncSession = Depends(get_session),
) -> AdminAccountResponse:
    user = await update_admin(db, master, user_id, body.admin_role, body.permissions)
    await db.commit()
    return _admin_response(user)


@router.delete("/admins/{user_id}")
async def remove_admin(
    user_id: int,
    master: User = Depends(require_master_admin),
    db: AsyncSession = Depends(get_session),
) -> dict[str, bool]:
    await revoke_admin(db, master, user_id)
    await db.commit()
    return {"success": True}


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


@router.get("/transactions", response_model=AdminTransactionListResponse)
async def get_transactions(
    search: str | None = Query(None, max_length=320),
    status: str | None = Query(None),
    gateway: str | None = Query(None),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    _admin: User = Depends(require_permission("view_transactions")),
    db: AsyncSession = Depends(get_session),
) -> AdminTransactionListResponse:
    transactions, pagination = await list_transactions(
        db,
        search=search,
        status=status,
        gateway=gateway,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    )
    users = await users_by_email(db, {t.email for t in transactions})
    return AdminTransactionListResponse(
        transactions=[_transaction_response(t, users.get(t.email)) for t in transactions],
        pagination=Pagination(**pagination),
    )


@router.get("/transactions/{transaction_id}", response_model=AdminTransactionResponse)
async def get_one_transaction(
    transaction_id: int,
    _admin: User = Depends(require_permission("view_transactions")),
    db: AsyncSession = Depends(get_session),
) -> AdminTransactionResponse:
    txn = await get_transaction(db, transaction_id)
    users = await users_by_email(db, {txn.email})
    return _transaction_response(txn, users.get(txn.email))


@router.delete("/transactions/{transaction_id}")
async def remove_transaction(
    transaction_id: int,
    admin: User = Depends(require_permission("manage_payments")),
    db: AsyncSession = Depends(get_session),
) -> dict[str, bool]:
    await delete_transaction(db, admin, transaction_id)
    await db.commit()
    return {"success": True}


# ---------------------------------------------------------------------------
# Activity & stats
# ---------------------------------------------------------------------------


@router.get("/activity", response_model=AdminLogListResponse)
async def activity(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    _admin: User = Depends(require_permission("view_logs")),
    db: AsyncSession = Depends(get_session),
) -> AdminLogListResponse:
    logs, pagination = await list_admin_logs(db, page, limit)
    return AdminLogListResponse(
        logs=[AdminLogResponse.model_validate(entry) for entry in logs],
        pagination=Pagination(**pagination),
    )


@router.get("/stats", response_model=StatsResponse)
async def stats(
    _admin: User = Depends(require_permission("view_analytics")),
    db: AsyncSession = Depends(get_session),
) -> StatsResponse:
    return StatsResponse(**await get_stats(db))
