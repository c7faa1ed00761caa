from fastapi import APIRouter, Depends, HTTPException

from account_proxy.dependencies import get_accessor, get_identity
from account_proxy.schemas import EmailConfirmation, LoginForm, SignupForm
from account_proxy.services.user_service import UserAccessor

router = APIRouter(tags=["users"])


@router.post("/login")
async def login(form: LoginForm, users: UserAccessor = Depends(get_accessor)):
    return await users.login(form.name, form.password)


@router.post("/signup", status_code=201)
async def signup(form: SignupForm, users: UserAccessor = Depends(get_accessor)):
    return await users.signup(form.model_dump(exclude={"verify"}))


@router.get("/email/{email}/usernames")
async def lookup_email(email: str, users: UserAccessor = Depends(get_accessor)):
    return await users.lookup_email(email)


@router.post("/confirm-email")
async def confirm_email(
    data: EmailConfirmation,
    identity: str | None = Depends(get_identity),
    users: UserAccessor = Depends(get_accessor),
):
    if identity is None:
        raise HTTPException(status_code=401, detail="Login required")
    result = await users.confirm_email(
        {"name": identity, "verification_key": data.verification_key}
    )
    await users.drop(identity)
    return result
