"""User routes - API endpoints for user operations."""

from fastapi import APIRouter, HTTPException

from rally.api.deps import CurrentUser, DBSession
from rally.schemas.user import UserCreate, UserResponse
from rally.services.user_service import UserService

router = APIRouter()


@router.post("/", response_model=UserResponse, status_code=201)
async def create_user(user_data: UserCreate, db: DBSession):
    """Create a new user with default preferences."""
    service = UserService(db)

    # Check if user with this identity already exists
    existing = await service.get_user_by_external_id(user_data.external_id)
    if existing:
        raise HTTPException(status_code=400, detail="User with this id already exists")

    return await service.create_user(user_data)


@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(user: CurrentUser):
    """Get the calling user together with their preferences."""
    return user
