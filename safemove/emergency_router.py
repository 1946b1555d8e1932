from dataclasses import asdict

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from safemove import lifecycle
from safemove.config import Settings
from safemove.dependencies import get_app_settings, get_clock, get_db, get_dispatcher
from safemove.schemas.emergency_schemas import EmergencyOut, EmergencyRequest, WhatsAppAlertRequest

router = APIRouter(prefix="/api", tags=["emergency"])


# --- Anonymous emergency (no student attached) ---
@router.post("/emergencies", status_code=status.HTTP_201_CREATED)
async def record_anonymous_emergency(
    payload: EmergencyRequest,
    db: Session = Depends(get_db),
    dispatcher=Depends(get_dispatcher),
    settings: Settings = Depends(get_app_settings),
    clock=Depends(get_clock)
):
    recipients = settings.emergency_contacts if payload.notify else []
    record = lifecycle.record_emergency(
        db, None, payload.cause,
        dispatcher=dispatcher,
        recipients=recipients,
        body=payload.message,
        now=clock()
    )
    return {
        "event": EmergencyOut.model_validate(record.event),
        "delivery": asdict(record.delivery),
    }


# --- Direct WhatsApp alert to a list of numbers ---
@router.post("/alerts/whatsapp")
async def send_whatsapp_alert(payload: WhatsAppAlertRequest, dispatcher=Depends(get_dispatcher)):
    report = lifecycle.send_alert(dispatcher, payload.phone_numbers, payload.message)
    if not report.delivered:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "message": "Failed to send WhatsApp messages.",
                "error": report.error,
                "delivered_to": report.delivered_to,
            }
        )
    return {"message": "WhatsApp alerts sent successfully!"}
