from fastapi import APIRouter, Depends

from medreminder.core.redis_client import get_redis
from medreminder.core.security import verify_api_key_dependency
from .engine import ReminderEngine, get_engine
from .repository import DeviceTokenStore, RedisDeviceTokenStore
from .schemas import (
    ActionIn,
    ActionOutcomeRead,
    AlarmTestIn,
    AlarmTestRead,
    DeviceTokenCreate,
    RefreshIn,
    RefreshResult,
    ReminderIn,
    ScheduleResult,
)


router = APIRouter(dependencies=[Depends(verify_api_key_dependency)])


def get_device_store() -> DeviceTokenStore:
    return RedisDeviceTokenStore(get_redis())


@router.post("/schedule", response_model=ScheduleResult)
def schedule_reminder_endpoint(payload: ReminderIn, engine: ReminderEngine = Depends(get_engine)):
    """Apply a created or edited reminder: cancel its previous triggers, then schedule the horizon."""
    scheduled = engine.reschedule(payload.to_domain())
    return ScheduleResult(reminder_id=payload.id, scheduled=scheduled)


@router.delete("/{reminder_id}/schedule", status_code=204)
def cancel_reminder_endpoint(reminder_id: str, engine: ReminderEngine = Depends(get_engine)):
    engine.cancel(reminder_id)


@router.post("/refresh", response_model=RefreshResult)
def refresh_endpoint(payload: RefreshIn, engine: ReminderEngine = Depends(get_engine)):
    scheduled = engine.refresh(r.to_domain() for r in payload.reminders)
    return RefreshResult(reminders=len(payload.reminders), scheduled=scheduled)


@router.post("/actions", response_model=ActionOutcomeRead)
def reminder_action_endpoint(payload: ActionIn, engine: ReminderEngine = Depends(get_engine)):
    outcome = engine.on_action(payload.to_domain())
    return ActionOutcomeRead.from_domain(outcome)


@router.post("/devices", status_code=204)
def register_device_endpoint(payload: DeviceTokenCreate, store: DeviceTokenStore = Depends(get_device_store)):
    store.upsert(payload.user_id, payload.platform, payload.fcm_token)


@router.post("/test-alarm", response_model=AlarmTestRead)
def alarm_test_endpoint(payload: AlarmTestIn, engine: ReminderEngine = Depends(get_engine)):
    delivered = engine.test_alarm(payload.user_id)
    return AlarmTestRead(reminder_id=delivered.reminder_id, fired_at=delivered.fired_at)
