from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from medibot.api.deps import verify_api_key_dependency
from .recurrence import InvalidReminderSchedule
from .schemas import (
    DeviceTokenCreate,
    DeviceTokenSaved,
    FanoutReportRead,
    MedicationCreate,
    MedicationRead,
    MedicationUpdate,
    ScheduleRead,
    WatchStarted,
)
from .service import ReminderService
from .sync import ReminderSync


router = APIRouter(dependencies=[Depends(verify_api_key_dependency)])


def get_reminder_service(request: Request) -> ReminderService:
    return request.app.state.reminder_service


def get_reminder_sync(request: Request) -> ReminderSync:
    return request.app.state.reminder_sync


# Handlers stay async: the scheduler must only be touched from the event loop thread

@router.post("/medications", response_model=MedicationRead, status_code=201)
async def create_medication_endpoint(payload: MedicationCreate, service: ReminderService = Depends(get_reminder_service)):
    try:
        medication = service.create_medication(payload.to_medication())
    except InvalidReminderSchedule as e:
        raise HTTPException(status_code=400, detail=str(e))
    return MedicationRead.from_medication(medication)


@router.get("/medications", response_model=List[MedicationRead])
async def list_medications_endpoint(user_id: str, service: ReminderService = Depends(get_reminder_service)):
    return [MedicationRead.from_medication(m) for m in service.repository.list_active_medications(user_id)]


@router.get("/medications/{medication_id}", response_model=MedicationRead)
async def get_medication_endpoint(medication_id: str, service: ReminderService = Depends(get_reminder_service)):
    medication = service.repository.get_medication(medication_id)
    if not medication:
        raise HTTPException(status_code=404, detail="Medication not found")
    return MedicationRead.from_medication(medication)


@router.patch("/medications/{medication_id}", response_model=MedicationRead)
async def update_medication_endpoint(
    medication_id: str,
    payload: MedicationUpdate,
    service: ReminderService = Depends(get_reminder_service),
):
    """Update a medication and re-arm (or cancel) its reminders."""
    try:
        medication = service.update_medication(medication_id, payload.to_document_changes())
    except InvalidReminderSchedule as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not medication:
        raise HTTPException(status_code=404, detail="Medication not found")
    return MedicationRead.from_medication(medication)


@router.delete("/medications/{medication_id}", status_code=204)
async def delete_medication_endpoint(medication_id: str, service: ReminderService = Depends(get_reminder_service)):
    if not service.delete_medication(medication_id):
        raise HTTPException(status_code=404, detail="Medication not found")
    return Response(status_code=204)


@router.post("/medications/{medication_id}/test", response_model=FanoutReportRead)
async def test_medication_reminder_endpoint(medication_id: str, service: ReminderService = Depends(get_reminder_service)):
    report = await service.send_test_reminder(medication_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Medication not found")
    return FanoutReportRead.from_report(report)


@router.get("/schedules", response_model=List[ScheduleRead])
async def list_schedules_endpoint(
    medication_id: Optional[str] = None,
    service: ReminderService = Depends(get_reminder_service),
):
    return [ScheduleRead.from_wakeup(w) for w in service.scheduler.pending(medication_id)]


@router.post("/devices", response_model=DeviceTokenSaved)
async def register_device_token(payload: DeviceTokenCreate, service: ReminderService = Depends(get_reminder_service)):
    service.repository.save_device_token(payload.user_id, payload.fcm_token)
    return DeviceTokenSaved(user_id=payload.user_id, platform=payload.platform)


@router.post("/users/{user_id}/watch", response_model=WatchStarted)
async def watch_user_endpoint(user_id: str, sync: ReminderSync = Depends(get_reminder_sync)):
    started = sync.watch_user(user_id)
    return WatchStarted(user_id=user_id, watching=True, already_watching=not started)


@router.get("/health")
async def health_check(service: ReminderService = Depends(get_reminder_service)):
    return {"status": "healthy", "service": "reminders", "pending_wakeups": len(service.scheduler.pending())}
