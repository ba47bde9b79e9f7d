from fastapi import APIRouter, Depends

from app.logstore.store import RequestLog, get_request_log

router = APIRouter(prefix="/logs")


@router.get("")
async def list_logs(log: RequestLog = Depends(get_request_log)):
    return {"entries": [entry.to_dict() for entry in log.entries()]}


@router.delete("")
async def clear_logs(log: RequestLog = Depends(get_request_log)):
    return {"cleared": log.clear()}
