"""
Profile pages and the profile-edit flow.

These routes take the caller's identity from ``get_identity``, which trusts
the ``Authorization: Bearer <name>`` credential as-is.  Session and CSRF
checks belong to the front end that sits before this service; it must be
the only client that can reach it.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import ValidationError

from account_proxy.dependencies import get_accessor, get_identity
from account_proxy.schemas import Profile, ProfileUpdate
from account_proxy.services.user_service import UserAccessor

router = APIRouter(tags=["profile"])


def _login_redirect(done: str) -> RedirectResponse:
    return RedirectResponse(f"/login?done={done}", status_code=302)


def _validation_failure(exc: ValidationError) -> JSONResponse:
    details = [
        {"path": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": {"details": details}})


@router.get("/~{name}", response_model=Profile)
async def show_profile(name: str, users: UserAccessor = Depends(get_accessor)):
    return await users.get(name, stars=True, packages=True)


@router.get("/profile", response_model=Profile)
async def show_own_profile(
    identity: str | None = Depends(get_identity),
    users: UserAccessor = Depends(get_accessor),
):
    if identity is None:
        return _login_redirect("/profile")
    return await users.get(identity, stars=True, packages=True)


@router.get("/profile-edit", response_model=Profile)
async def edit_profile(
    identity: str | None = Depends(get_identity),
    users: UserAccessor = Depends(get_accessor),
):
    if identity is None:
        return _login_redirect("/profile-edit")
    return await users.get(identity)


@router.post("/profile-edit")
async def update_profile(
    request: Request,
    identity: str | None = Depends(get_identity),
    users: UserAccessor = Depends(get_accessor),
):
    """
    Save the caller's profile fields and send them back to their profile.

    The body is validated by hand so anonymous callers are redirected
    before their payload is looked at.  The submitted fields are merged
    over the stored ``resource`` and the full map is saved.  The cached
    record is dropped after the save so the next profile view shows the
    update.
    """
    if identity is None:
        return _login_redirect("/profile-edit")

    try:
        payload = await request.json()
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        return JSONResponse(
            status_code=400,
            content={"error": {"details": [{"path": "", "message": "expected a JSON object"}]}},
        )

    try:
        update = ProfileUpdate.model_validate(payload)
    except ValidationError as exc:
        return _validation_failure(exc)

    current = await users.get(identity)
    resource = {**(current.get("resource") or {}), **update.model_dump(exclude_none=True)}
    await users.save({"name": identity, "resource": resource})
    await users.drop(identity)
    return RedirectResponse("/profile", status_code=302)
