import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Security
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, ConfigDict, Field

from book import BookType
from config import settings
from database import Database, initialize_database
from errors import ConflictError, NotFoundError, StorageError, ValidationError
from library import BookService, UserService

logger = logging.getLogger(__name__)


# --- Models ---
class BookRequest(BaseModel):
    name: str
    type: BookType


class BookModel(BaseModel):
    id: int
    name: str
    type: BookType


class BookLoanRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_name: str = Field(alias="userName")
    book_name: str = Field(alias="bookName")


class BookReturnRequest(BookLoanRequest):
    pass


class BookStatModel(BaseModel):
    type: BookType
    count: int


class UserCreateRequest(BaseModel):
    name: str
    age: Optional[int] = None


class UserUpdateRequest(BaseModel):
    id: int
    name: str


class UserModel(BaseModel):
    id: int
    name: str
    age: Optional[int] = None


class BookHistoryModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    is_return: bool = Field(alias="isReturn")


class UserLoanHistoryModel(BaseModel):
    name: str
    books: List[BookHistoryModel]


# --- Security ---
api_key_header = APIKeyHeader(name="X-API-Key")

def get_api_key(api_key: str = Security(api_key_header)):
    """Dependency that checks the API key on mutating routes."""
    if api_key == settings.api_key:
        return api_key
    raise HTTPException(status_code=403, detail="Could not validate credentials")


# --- Dependencies ---
def get_book_service(request: Request) -> BookService:
    return BookService.from_database(request.app.state.database)

def get_user_service(request: Request) -> UserService:
    return UserService.from_database(request.app.state.database)


# --- Error mapping ---
async def _validation_error_handler(request: Request, exc: ValidationError):
    logger.warning(f"{request.method} {request.url.path} rejected: {exc}")
    return JSONResponse(status_code=400, content={"detail": str(exc)})

async def _not_found_handler(request: Request, exc: NotFoundError):
    logger.warning(f"{request.method} {request.url.path} not found: {exc}")
    return JSONResponse(status_code=404, content={"detail": str(exc)})

async def _conflict_handler(request: Request, exc: ConflictError):
    logger.warning(f"{request.method} {request.url.path} conflict: {exc}")
    return JSONResponse(status_code=409, content={"detail": str(exc)})

async def _storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"{request.method} {request.url.path} storage failure: {exc}")
    return JSONResponse(status_code=500, content={"detail": str(exc)})


def create_app(database: Optional[Database] = None) -> FastAPI:
    """Build the HTTP app around a database.

    Without an explicit database the lifespan hook opens the configured file.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.database is None:
            app.state.database = initialize_database(settings.database_file)
        yield

    app = FastAPI(title=settings.app_name, version=settings.app_version,
                  debug=settings.debug, lifespan=lifespan)
    app.state.database = database
    if database is not None:
        database.create_tables()

    app.add_exception_handler(ValidationError, _validation_error_handler)
    app.add_exception_handler(NotFoundError, _not_found_handler)
    app.add_exception_handler(ConflictError, _conflict_handler)
    app.add_exception_handler(StorageError, _storage_error_handler)

    # --- Health ---
    @app.get("/health")
    def health():
        return {"status": "healthy", "app": settings.app_name, "version": settings.app_version}

    # --- Books ---
    @app.post("/book", response_model=BookModel, dependencies=[Depends(get_api_key)])
    def save_book(payload: BookRequest, service: BookService = Depends(get_book_service)):
        """Register a new book in the catalog."""
        book = service.save_book(payload.name, payload.type)
        return BookModel(id=book.id, name=book.name, type=book.type)

    @app.get("/book", response_model=List[BookModel])
    def get_books(service: BookService = Depends(get_book_service)):
        return [BookModel(id=b.id, name=b.name, type=b.type) for b in service.get_books()]

    @app.post("/book/loan", dependencies=[Depends(get_api_key)])
    def loan_book(payload: BookLoanRequest, service: BookService = Depends(get_book_service)):
        """Loan a book to a user; 409 if the book is already out."""
        service.loan_book(payload.user_name, payload.book_name)

    @app.put("/book/return", dependencies=[Depends(get_api_key)])
    def return_book(payload: BookReturnRequest, service: BookService = Depends(get_book_service)):
        service.return_book(payload.user_name, payload.book_name)

    @app.get("/book/loan", response_model=int)
    def count_loaned_book(service: BookService = Depends(get_book_service)):
        """Number of books currently on loan."""
        return service.count_loaned_book()

    @app.get("/book/stat", response_model=List[BookStatModel])
    def get_book_statistics(service: BookService = Depends(get_book_service)):
        return [BookStatModel(type=s.type, count=s.count) for s in service.get_book_statistics()]

    # --- Users ---
    @app.post("/user", response_model=UserModel, dependencies=[Depends(get_api_key)])
    def save_user(payload: UserCreateRequest, service: UserService = Depends(get_user_service)):
        user = service.save_user(payload.name, payload.age)
        return UserModel(**user.to_dict())

    @app.get("/user", response_model=List[UserModel])
    def get_users(service: UserService = Depends(get_user_service)):
        return [UserModel(**u.to_dict()) for u in service.get_users()]

    @app.put("/user", response_model=UserModel, dependencies=[Depends(get_api_key)])
    def update_user_name(payload: UserUpdateRequest, service: UserService = Depends(get_user_service)):
        user = service.update_user_name(payload.id, payload.name)
        return UserModel(**user.to_dict())

    @app.get("/user/loan", response_model=List[UserLoanHistoryModel], response_model_by_alias=True)
    def get_user_loan_histories(service: UserService = Depends(get_user_service)):
        """Every user with the books they have borrowed and whether each came back."""
        return [UserLoanHistoryModel(**view.to_dict()) for view in service.get_user_loan_histories()]

    return app


app = create_app()
