from fastapi import APIRouter, Depends

from crm import schemas
from crm.db import utcnow
from crm.deps import get_current_user

router = APIRouter(prefix="/ai", tags=["assistant"])

STUB_REPLY = (
    "This is a simulated AI response. Connect an assistant backend to answer "
    "questions about your business data."
)


@router.post("/chat", response_model=schemas.ChatOut)
async def chat(payload: schemas.ChatIn, user=Depends(get_current_user)):
    # stub: no model is called
    return {"role": "assistant", "content": STUB_REPLY, "created_at": utcnow()}
