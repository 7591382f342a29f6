from fastapi import APIRouter

from app.api.chat import router as chat_router
from app.api.groups import router as groups_router
from app.api.statuses import router as statuses_router
from app.api.users import router as users_router

router = APIRouter()

router.include_router(users_router)
router.include_router(chat_router)
router.include_router(groups_router)
router.include_router(statuses_router)


@router.get("/", tags=["root"])
def read_root() -> dict[str, str]:
    return {"message": "Welcome to the Parley API"}
