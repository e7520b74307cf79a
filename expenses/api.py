import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .auth import AuthError, Claims, InvalidCredentialsError, TokenExpiredError, verify_token
from .balances import BalanceError
from .config import Settings, configure_logging, load_settings
from .membership import NotAMemberError
from .models import (
    Balance, CreateExpenseRequest, CreateGroupRequest, CreatePaymentRequest,
    CreateUserRequest, ErrorResponse, Expense, ExpenseResponse, Group,
    LoginRequest, LoginResponse, Payment, UserResponse,
)
from .service import (
    ExpenseService, SelfPaymentError, UserAlreadyExistsError, UserNotFoundError,
)

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

router = APIRouter()


def get_service(request: Request) -> ExpenseService:
    return request.app.state.service


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Claims:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return verify_token(credentials.credentials, request.app.state.settings)
    except TokenExpiredError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except AuthError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))


def require_admin(claims: Claims = Depends(get_current_user)) -> Claims:
    if not claims.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only")
    return claims


def _not_a_member(e: NotAMemberError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))


def _ledger_fault(group_id: UUID, e: BalanceError) -> HTTPException:
    logger.error("Ledger for group %s is inconsistent: %s", group_id, e)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Cannot compute balances: {e}",
    )


@router.get("/", tags=["System"])
def index():
    return {"message": "Expense Share API is running!"}


@router.get("/health", tags=["System"])
def health_check():
    return {"status": "healthy", "service": "expense-share"}


@router.post("/login", response_model=LoginResponse, tags=["Auth"])
def login(request: LoginRequest, service: ExpenseService = Depends(get_service)) -> LoginResponse:
    try:
        token, user = service.login(request)
    except InvalidCredentialsError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    return LoginResponse(token=token, user=user)


@router.post("/admin/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED, tags=["Admin"])
def create_user(
    request: CreateUserRequest,
    _: Claims = Depends(require_admin),
    service: ExpenseService = Depends(get_service),
) -> UserResponse:
    try:
        return service.create_user(request)
    except UserAlreadyExistsError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.get("/admin/users", response_model=list[UserResponse], tags=["Admin"])
def list_users(
    _: Claims = Depends(require_admin),
    service: ExpenseService = Depends(get_service),
) -> list[UserResponse]:
    return service.list_users()


@router.post("/admin/groups", response_model=Group, status_code=status.HTTP_201_CREATED, tags=["Admin"])
def create_group(
    request: CreateGroupRequest,
    claims: Claims = Depends(require_admin),
    service: ExpenseService = Depends(get_service),
) -> Group:
    try:
        return service.create_group(claims.user_id, request)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/groups", response_model=list[Group], tags=["Groups"])
def list_user_groups(
    claims: Claims = Depends(get_current_user),
    service: ExpenseService = Depends(get_service),
) -> list[Group]:
    return service.list_user_groups(claims.user_id)


@router.post("/groups/{group_id}/expenses", response_model=Expense, status_code=status.HTTP_201_CREATED, tags=["Groups"])
def add_expense(
    group_id: UUID,
    request: CreateExpenseRequest,
    claims: Claims = Depends(get_current_user),
    service: ExpenseService = Depends(get_service),
) -> Expense:
    try:
        return service.add_expense(group_id, claims.user_id, request)
    except NotAMemberError as e:
        raise _not_a_member(e)


@router.get("/groups/{group_id}/expenses", response_model=list[ExpenseResponse], tags=["Groups"])
def list_group_expenses(
    group_id: UUID,
    claims: Claims = Depends(get_current_user),
    service: ExpenseService = Depends(get_service),
) -> list[ExpenseResponse]:
    try:
        return service.list_group_expenses(group_id, claims.user_id)
    except NotAMemberError as e:
        raise _not_a_member(e)


@router.get("/groups/{group_id}/balances", response_model=list[Balance], tags=["Groups"])
def get_group_balances(
    group_id: UUID,
    claims: Claims = Depends(get_current_user),
    service: ExpenseService = Depends(get_service),
) -> list[Balance]:
    try:
        return service.get_group_balances(group_id, claims.user_id)
    except NotAMemberError as e:
        raise _not_a_member(e)
    except BalanceError as e:
        raise _ledger_fault(group_id, e)


@router.post("/groups/{group_id}/payments", response_model=Payment, status_code=status.HTTP_201_CREATED, tags=["Groups"])
def make_payment(
    group_id: UUID,
    request: CreatePaymentRequest,
    claims: Claims = Depends(get_current_user),
    service: ExpenseService = Depends(get_service),
) -> Payment:
    try:
        return service.make_payment(group_id, claims.user_id, request)
    except SelfPaymentError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except NotAMemberError as e:
        raise _not_a_member(e)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"] if part != "body")
        messages.append(f"{location}: {error['msg']}" if location else error["msg"])
    body = ErrorResponse(error="validation_error", message="; ".join(messages))
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.model_dump())


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[ExpenseService] = None,
    root_path: str = "",
) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings)

    app = FastAPI(
        title="Expense Share API",
        description="Shared expenses, group balances and settlement payments",
        version="1.0.0",
        root_path=root_path,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.state.settings = settings
    app.state.service = service or ExpenseService(settings)
    if settings.admin_email and settings.admin_password:
        app.state.service.bootstrap_admin(settings.admin_email, settings.admin_username, settings.admin_password)

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=app.state.settings.host, port=app.state.settings.port)
