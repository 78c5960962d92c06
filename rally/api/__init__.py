from fastapi import APIRouter
from rally.api.routes import users, wakeup_calls, telephony, scheduler

api_router = APIRouter()

api_router.include_router(users.router, prefix="/users", tags=["Users"])
api_router.include_router(wakeup_calls.router, prefix="/wakeup-calls", tags=["Wake-Up Calls"])
api_router.include_router(telephony.router, prefix="/telephony", tags=["Telephony"])
api_router.include_router(scheduler.router, prefix="/scheduler", tags=["Scheduler"])
