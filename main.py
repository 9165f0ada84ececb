import logging
import os
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Callable, Dict, Optional, Tuple

from fastapi import APIRouter, Depends, FastAPI, File, Form, Request, Response, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_settings
from database import object_id
from dependencies import AppContext, build_context, get_context, get_current_user
from errors import (
    AppError,
    AuthenticationError,
    BadRequestError,
    NotFoundError,
    NotificationError,
    UpstreamError,
)
from schemas import (
    PRIVATE_USER_FIELDS,
    normalize_email,
    Project as ProjectSchema,
    Skill as SkillSchema,
    SoftwareApplication as SoftwareApplicationSchema,
    User as UserSchema,
)
from security import (
    create_access_token,
    generate_reset_token,
    hash_password,
    hash_reset_token,
    reset_token_valid,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter()

PROJECT_FOLDER = "PROJECT IMAGES"
SKILL_FOLDER = "PORTFOLIO_SKILLS-SVGS"
APPLICATION_FOLDER = "PORTFOLIO_SOFTWARE_APPLICATION"
AVATAR_FOLDER = "AVATARS"
RESUME_FOLDER = "MY_RESUME"

MIN_PASSWORD_LENGTH = 8

# Helpers

def to_public(doc: dict):
    if not doc:
        return doc
    doc = {k: v for k, v in doc.items() if k not in PRIVATE_USER_FIELDS}
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    return doc


def _missing(*values) -> bool:
    return any(v is None or v == "" for v in values)


def _has_file(upload: Optional[UploadFile]) -> bool:
    return upload is not None and bool(upload.filename)


def _split_list(value: Optional[str]):
    if value is None:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


def _upload(ctx: AppContext, upload: UploadFile, folder: str) -> dict:
    asset = ctx.assets.upload(upload.file, upload.filename, folder, upload.content_type)
    return asset.model_dump()


def _discard_asset(ctx: AppContext, public_id: Optional[str]) -> None:
    if not public_id:
        return
    try:
        ctx.assets.destroy(public_id)
    except UpstreamError as exc:
        logger.warning("Could not delete asset %s: %s", public_id, exc.message)


def _create_with_assets(
    ctx: AppContext,
    collection: str,
    build: Callable[..., BaseModel],
    files: Dict[str, Tuple[UploadFile, str]],
) -> dict:
    """Upload every file, then insert the record built from the uploaded assets."""
    uploaded = {}
    try:
        for field, (upload, folder) in files.items():
            uploaded[field] = _upload(ctx, upload, folder)
        return ctx.store.create_document(collection, build(**uploaded))
    except Exception:
        for asset in uploaded.values():
            _discard_asset(ctx, asset["public_id"])
        raise


def _update_with_assets(
    ctx: AppContext,
    collection: str,
    current: dict,
    changes: dict,
    files: Dict[str, Tuple[UploadFile, str]],
) -> dict:
    """
    Upload replacement files, write the record, then drop the replaced assets.

    Old assets are only deleted once the write went through; if it fails the
    fresh uploads are removed instead.
    """
    uploaded = {}
    try:
        for field, (upload, folder) in files.items():
            uploaded[field] = _upload(ctx, upload, folder)
        updated = ctx.store.update_by_id(collection, current["_id"], {**changes, **uploaded})
    except Exception:
        for asset in uploaded.values():
            _discard_asset(ctx, asset["public_id"])
        raise
    for field in uploaded:
        _discard_asset(ctx, (current.get(field) or {}).get("public_id"))
    return updated


def _get_or_404(ctx: AppContext, collection: str, id: str, message: str) -> dict:
    doc = ctx.store.find_by_id(collection, object_id(id))
    if not doc:
        raise NotFoundError(message)
    return doc


def _delete_with_asset(ctx: AppContext, collection: str, id: str, asset_field: str, message: str) -> None:
    doc = _get_or_404(ctx, collection, id, message)
    _discard_asset(ctx, (doc.get(asset_field) or {}).get("public_id"))
    ctx.store.delete_by_id(collection, doc["_id"])


def _issue_token(ctx: AppContext, response: Response, user: dict, message: str) -> dict:
    lifetime = ctx.token_lifetime
    token = create_access_token(str(user["_id"]), ctx.settings.jwt_secret, lifetime)
    response.set_cookie(
        key="token",
        value=token,
        max_age=int(lifetime.total_seconds()),
        httponly=True,
        secure=ctx.settings.cookie_secure,
        samesite="lax",
    )
    return {"success": True, "message": message, "user": to_public(user), "token": token}


# Health
@router.get("/")
def read_root():
    return {"message": "Portfolio API running"}

@router.get("/test")
def test_database(ctx: AppContext = Depends(get_context)):
    status = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if ctx.settings.database_url else "❌ Not Set",
        "database_name": ctx.settings.database_name,
        "collections": []
    }
    try:
        cols = ctx.store.collection_names()
        status["database"] = "✅ Connected"
        status["collections"] = cols
    except Exception as e:
        status["database"] = f"❌ Error: {str(e)[:80]}"
    return status

# Auth
class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None

class UpdatePasswordRequest(BaseModel):
    current_password: Optional[str] = None
    new_password: Optional[str] = None
    confirm_new_password: Optional[str] = None

class ForgotPasswordRequest(BaseModel):
    email: Optional[str] = None

class ResetPasswordRequest(BaseModel):
    password: Optional[str] = None
    confirm_password: Optional[str] = None


@router.post("/auth/register", status_code=201)
def register(
    response: Response,
    full_name: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    about_me: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    portfolio_url: Optional[str] = Form(None),
    github_url: Optional[str] = Form(None),
    linkedin_url: Optional[str] = Form(None),
    twitter_url: Optional[str] = Form(None),
    instagram_url: Optional[str] = Form(None),
    facebook_url: Optional[str] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    resume: Optional[UploadFile] = File(None),
    ctx: AppContext = Depends(get_context),
):
    if not _has_file(avatar) or not _has_file(resume):
        raise BadRequestError("Avatar and resume are required!")
    if _missing(full_name, email, phone, about_me, password, portfolio_url):
        raise BadRequestError("Please provide all details!")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise BadRequestError(f"Password must contain at least {MIN_PASSWORD_LENGTH} characters!")
    email = normalize_email(email)
    if ctx.store.find_one("user", {"email": email}):
        raise BadRequestError("Duplicate email entered")

    user = _create_with_assets(
        ctx,
        "user",
        lambda **assets: UserSchema(
            full_name=full_name,
            email=email,
            phone=phone,
            about_me=about_me,
            password_hash=hash_password(password),
            portfolio_url=portfolio_url,
            github_url=github_url,
            linkedin_url=linkedin_url,
            twitter_url=twitter_url,
            instagram_url=instagram_url,
            facebook_url=facebook_url,
            **assets,
        ),
        {"avatar": (avatar, AVATAR_FOLDER), "resume": (resume, RESUME_FOLDER)},
    )
    logger.info("Registered user %s", user["email"])
    return _issue_token(ctx, response, user, "User Registered!")


@router.post("/auth/login")
def login(payload: LoginRequest, response: Response, ctx: AppContext = Depends(get_context)):
    if _missing(payload.email, payload.password):
        raise BadRequestError("Email and password are required")
    user = ctx.store.find_one("user", {"email": normalize_email(payload.email)})
    # Same message for unknown email and wrong password
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        raise AuthenticationError("Invalid email or password!")
    return _issue_token(ctx, response, user, "Logged In")


@router.get("/auth/logout")
def logout(response: Response, ctx: AppContext = Depends(get_context), user=Depends(get_current_user)):
    response.delete_cookie(
        key="token", httponly=True, secure=ctx.settings.cookie_secure, samesite="lax"
    )
    return {"success": True, "message": "Logged out"}


@router.get("/auth/me")
def get_user(user=Depends(get_current_user)):
    return {"success": True, "user": to_public(user)}


@router.put("/auth/me/profile")
def update_profile(
    full_name: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    about_me: Optional[str] = Form(None),
    portfolio_url: Optional[str] = Form(None),
    github_url: Optional[str] = Form(None),
    linkedin_url: Optional[str] = Form(None),
    twitter_url: Optional[str] = Form(None),
    instagram_url: Optional[str] = Form(None),
    facebook_url: Optional[str] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    resume: Optional[UploadFile] = File(None),
    ctx: AppContext = Depends(get_context),
    user=Depends(get_current_user),
):
    fields = {
        "full_name": full_name,
        "email": email,
        "phone": phone,
        "about_me": about_me,
        "portfolio_url": portfolio_url,
        "github_url": github_url,
        "linkedin_url": linkedin_url,
        "twitter_url": twitter_url,
        "instagram_url": instagram_url,
        "facebook_url": facebook_url,
    }
    changes = {k: v for k, v in fields.items() if v is not None}
    validated = UserSchema.model_validate({**user, **changes})
    if "email" in changes:
        changes["email"] = validated.email

    files = {}
    if _has_file(avatar):
        files["avatar"] = (avatar, AVATAR_FOLDER)
    if _has_file(resume):
        files["resume"] = (resume, RESUME_FOLDER)
    updated = _update_with_assets(ctx, "user", user, changes, files)
    return {"success": True, "message": "Profile Updated!", "user": to_public(updated)}


@router.put("/auth/password")
def update_password(
    payload: UpdatePasswordRequest,
    ctx: AppContext = Depends(get_context),
    user=Depends(get_current_user),
):
    if _missing(payload.current_password, payload.new_password, payload.confirm_new_password):
        raise BadRequestError("Please fill all fields.")
    if not verify_password(payload.current_password, user.get("password_hash", "")):
        raise BadRequestError("Incorrect current password")
    if payload.new_password != payload.confirm_new_password:
        raise BadRequestError("Password is not matching.")
    if len(payload.new_password) < MIN_PASSWORD_LENGTH:
        raise BadRequestError(f"Password must contain at least {MIN_PASSWORD_LENGTH} characters!")
    ctx.store.update_by_id("user", user["_id"], {"password_hash": hash_password(payload.new_password)})
    return {"success": True, "message": "Password updated!"}


@router.post("/auth/password/forgot")
def forgot_password(payload: ForgotPasswordRequest, ctx: AppContext = Depends(get_context)):
    if _missing(payload.email):
        raise BadRequestError("Please provide your email.")
    user = ctx.store.find_one("user", {"email": normalize_email(payload.email)})
    if not user:
        raise NotFoundError("User not found!")

    lifetime = timedelta(minutes=ctx.settings.reset_token_expire_minutes)
    token, token_hash, expires_at = generate_reset_token(lifetime)
    ctx.store.update_by_id(
        "user", user["_id"],
        {"reset_password_token": token_hash, "reset_password_expire": expires_at},
    )

    reset_url = f"{ctx.settings.dashboard_url.rstrip('/')}/password/reset/{token}"
    message = (
        f"Your reset password token is:- \n\n {reset_url} \n\n"
        " If you've not requested for this please ignore it."
    )
    try:
        ctx.mailer.send(
            to=user["email"],
            subject="Personal portfolio dashboard recovery password",
            body=message,
        )
    except NotificationError:
        ctx.store.update_by_id(
            "user", user["_id"], {},
            unset=("reset_password_token", "reset_password_expire"),
        )
        raise
    return {"success": True, "message": f"Email sent to {user['email']} successfully!"}


@router.put("/auth/password/reset/{token}")
def reset_password(
    token: str,
    payload: ResetPasswordRequest,
    response: Response,
    ctx: AppContext = Depends(get_context),
):
    user = ctx.store.find_one("user", {"reset_password_token": hash_reset_token(token)})
    if not user or not reset_token_valid(
        user.get("reset_password_token"), user.get("reset_password_expire"), token
    ):
        raise BadRequestError("Reset password token is invalid or has been expired")
    if _missing(payload.password, payload.confirm_password):
        raise BadRequestError("Please provide password and confirm password.")
    if payload.password != payload.confirm_password:
        raise BadRequestError("Password & confirm password do not match.")
    if len(payload.password) < MIN_PASSWORD_LENGTH:
        raise BadRequestError(f"Password must contain at least {MIN_PASSWORD_LENGTH} characters!")

    user = ctx.store.update_by_id(
        "user", user["_id"],
        {"password_hash": hash_password(payload.password)},
        unset=("reset_password_token", "reset_password_expire"),
    )
    return _issue_token(ctx, response, user, "Reset password successfully!")


# Public fetch of the portfolio owner
@router.get("/portfolio/user")
def get_user_for_portfolio(ctx: AppContext = Depends(get_context)):
    owner_email = ctx.settings.portfolio_owner_email
    if owner_email:
        user = ctx.store.find_one("user", {"email": normalize_email(owner_email)})
    else:
        users = ctx.store.get_documents("user")
        user = users[0] if users else None
    if not user:
        raise NotFoundError("User not found!")
    return {"success": True, "user": to_public(user)}

# Projects
@router.post("/projects", status_code=201)
def add_new_project(
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    git_repo_link: Optional[str] = Form(None),
    project_link: Optional[str] = Form(None),
    technologies: Optional[str] = Form(None),
    stack: Optional[str] = Form(None),
    deployed: Optional[bool] = Form(None),
    project_banner: Optional[UploadFile] = File(None),
    ctx: AppContext = Depends(get_context),
    user=Depends(get_current_user),
):
    if not _has_file(project_banner):
        raise BadRequestError("Project banner image is required!")
    if _missing(title, description, git_repo_link, project_link, technologies, stack, deployed):
        raise BadRequestError("Please provide all details!")
    project = _create_with_assets(
        ctx,
        "project",
        lambda **assets: ProjectSchema(
            title=title,
            description=description,
            git_repo_link=git_repo_link,
            project_link=project_link,
            technologies=_split_list(technologies),
            stack=stack,
            deployed=deployed,
            **assets,
        ),
        {"project_banner": (project_banner, PROJECT_FOLDER)},
    )
    return {"success": True, "message": "New project added.", "project": to_public(project)}

@router.put("/projects/{project_id}")
def update_project(
    project_id: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    git_repo_link: Optional[str] = Form(None),
    project_link: Optional[str] = Form(None),
    technologies: Optional[str] = Form(None),
    stack: Optional[str] = Form(None),
    deployed: Optional[bool] = Form(None),
    project_banner: Optional[UploadFile] = File(None),
    ctx: AppContext = Depends(get_context),
    user=Depends(get_current_user),
):
    current = _get_or_404(ctx, "project", project_id, "Project not found!")
    fields = {
        "title": title,
        "description": description,
        "git_repo_link": git_repo_link,
        "project_link": project_link,
        "technologies": _split_list(technologies),
        "stack": stack,
        "deployed": deployed,
    }
    changes = {k: v for k, v in fields.items() if v is not None}
    files = {"project_banner": (project_banner, PROJECT_FOLDER)} if _has_file(project_banner) else {}
    project = _update_with_assets(ctx, "project", current, changes, files)
    return {"success": True, "message": "Project Updated.", "project": to_public(project)}

@router.delete("/projects/{project_id}")
def delete_project(project_id: str, ctx: AppContext = Depends(get_context), user=Depends(get_current_user)):
    _delete_with_asset(ctx, "project", project_id, "project_banner", "Project not found!")
    return {"success": True, "message": "Project is deleted."}

@router.get("/projects")
def get_all_projects(ctx: AppContext = Depends(get_context)):
    projects = ctx.store.get_documents("project")
    return {"success": True, "projects": [to_public(p) for p in projects]}

@router.get("/projects/{project_id}")
def get_single_project(project_id: str, ctx: AppContext = Depends(get_context)):
    project = _get_or_404(ctx, "project", project_id, "Project not found!")
    return {"success": True, "project": to_public(project)}

# Skills
@router.post("/skills", status_code=201)
def add_new_skill(
    title: Optional[str] = Form(None),
    proficiency: Optional[int] = Form(None, ge=0, le=100),
    svg: Optional[UploadFile] = File(None),
    ctx: AppContext = Depends(get_context),
    user=Depends(get_current_user),
):
    if not _has_file(svg):
        raise BadRequestError("Skill's svg is required!")
    if _missing(title, proficiency):
        raise BadRequestError("Please fill full form!")
    skill = _create_with_assets(
        ctx,
        "skill",
        lambda **assets: SkillSchema(title=title, proficiency=proficiency, **assets),
        {"svg": (svg, SKILL_FOLDER)},
    )
    return {"success": True, "message": "New skill added.", "skill": to_public(skill)}

@router.put("/skills/{skill_id}")
def update_skill(
    skill_id: str,
    title: Optional[str] = Form(None),
    proficiency: Optional[int] = Form(None, ge=0, le=100),
    svg: Optional[UploadFile] = File(None),
    ctx: AppContext = Depends(get_context),
    user=Depends(get_current_user),
):
    current = _get_or_404(ctx, "skill", skill_id, "Skill not found!")
    changes = {k: v for k, v in {"title": title, "proficiency": proficiency}.items() if v is not None}
    files = {"svg": (svg, SKILL_FOLDER)} if _has_file(svg) else {}
    skill = _update_with_assets(ctx, "skill", current, changes, files)
    return {"success": True, "message": "Skill is updated.", "skill": to_public(skill)}

@router.delete("/skills/{skill_id}")
def delete_skill(skill_id: str, ctx: AppContext = Depends(get_context), user=Depends(get_current_user)):
    _delete_with_asset(ctx, "skill", skill_id, "svg", "Skill not found!")
    return {"success": True, "message": "Skill is deleted."}

@router.get("/skills")
def get_all_skills(ctx: AppContext = Depends(get_context)):
    skills = ctx.store.get_documents("skill")
    return {"success": True, "skills": [to_public(s) for s in skills]}

@router.get("/skills/{skill_id}")
def get_single_skill(skill_id: str, ctx: AppContext = Depends(get_context)):
    skill = _get_or_404(ctx, "skill", skill_id, "Skill not found!")
    return {"success": True, "skill": to_public(skill)}

# Software applications
@router.post("/applications", status_code=201)
def add_new_application(
    name: Optional[str] = Form(None),
    svg: Optional[UploadFile] = File(None),
    ctx: AppContext = Depends(get_context),
    user=Depends(get_current_user),
):
    if not _has_file(svg):
        raise BadRequestError("Software application's icon/svg is required!")
    if _missing(name):
        raise BadRequestError("Software's name is required!")
    application = _create_with_assets(
        ctx,
        "software_application",
        lambda **assets: SoftwareApplicationSchema(name=name, **assets),
        {"svg": (svg, APPLICATION_FOLDER)},
    )
    return {
        "success": True,
        "message": "New software application added.",
        "software_application": to_public(application),
    }

@router.put("/applications/{application_id}")
def update_application(
    application_id: str,
    name: Optional[str] = Form(None),
    svg: Optional[UploadFile] = File(None),
    ctx: AppContext = Depends(get_context),
    user=Depends(get_current_user),
):
    current = _get_or_404(ctx, "software_application", application_id, "Software application not found!")
    changes = {"name": name} if name is not None else {}
    files = {"svg": (svg, APPLICATION_FOLDER)} if _has_file(svg) else {}
    application = _update_with_assets(ctx, "software_application", current, changes, files)
    return {
        "success": True,
        "message": "Software application is updated.",
        "software_application": to_public(application),
    }

@router.delete("/applications/{application_id}")
def delete_application(application_id: str, ctx: AppContext = Depends(get_context), user=Depends(get_current_user)):
    _delete_with_asset(
        ctx, "software_application", application_id, "svg", "Software application not found!"
    )
    return {"success": True, "message": "Software application is deleted."}

@router.get("/applications")
def get_all_applications(ctx: AppContext = Depends(get_context)):
    applications = ctx.store.get_documents("software_application")
    return {"success": True, "software_applications": [to_public(a) for a in applications]}

@router.get("/applications/{application_id}")
def get_single_application(application_id: str, ctx: AppContext = Depends(get_context)):
    application = _get_or_404(
        ctx, "software_application", application_id, "Software application not found!"
    )
    return {"success": True, "software_application": to_public(application)}


# Error responses

def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


def _first_error(errors) -> str:
    if not errors:
        return "Invalid request"
    err = errors[0]
    loc = ".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path"))
    return f"{loc}: {err.get('msg')}" if loc else err.get("msg", "Invalid request")


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return _error(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return _error(400, _first_error(exc.errors()))

    @app.exception_handler(ValidationError)
    async def model_validation_handler(request: Request, exc: ValidationError):
        return _error(400, _first_error(exc.errors()))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    settings = context.settings if context else get_settings()
    ctx = context or build_context(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.context.store.ensure_indexes()
        yield
        app.state.context.close()

    app = FastAPI(title="Portfolio API", lifespan=lifespan)
    app.state.context = ctx
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=get_settings().log_level)
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
