from typing import Optional
from fastapi import APIRouter

from app.core.authentication import CurrentUser
from app.src.schema.fines import (
    FineBase,
    FineCreate,
    FineDisputeRequest,
    FinePaymentRequest,
    FineStatusEnum,
    FineStatusUpdate,
)
from app.src.routes.dependencies import AdminUser, CommonsDependencies, FineServiceDep, StaffUser


router = APIRouter()


@router.get("/", response_model=dict)
async def read_fines(
    staff: StaffUser,
    params: CommonsDependencies,
    service: FineServiceDep,
    status: Optional[FineStatusEnum] = None,
    student_id: Optional[int] = None,
):
    fines = await service.list_fines(status, student_id, params["skip"], params["limit"])
    return {"fines": [FineBase.model_validate(fine) for fine in fines], **params}


@router.post("/", status_code=201)
async def create_fine(body: FineCreate, staff: StaffUser, service: FineServiceDep):
    fine = await service.create_fine(body, staff)
    return {"message": "Fine created successfully", "fine": FineBase.model_validate(fine)}


@router.get("/me", response_model=dict)
async def get_my_fines(current_user: CurrentUser, service: FineServiceDep):
    result = await service.student_fines(current_user.id)
    return {
        "fines": [FineBase.model_validate(fine) for fine in result["fines"]],
        "total_outstanding": result["total_outstanding"],
    }


# Declared before /{fine_id} so the literal path wins
@router.get("/statistics/overview", response_model=dict)
async def get_fine_statistics(admin: AdminUser, service: FineServiceDep):
    return {"statistics": await service.statistics()}


@router.get("/{fine_id}", response_model=dict)
async def get_fine(fine_id: int, current_user: CurrentUser, service: FineServiceDep):
    fine = await service.get_fine(fine_id, requester=current_user)
    return {"fine": FineBase.model_validate(fine)}


@router.post("/{fine_id}/pay")
async def pay_fine(
    fine_id: int,
    current_user: CurrentUser,
    service: FineServiceDep,
    body: Optional[FinePaymentRequest] = None,
):
    result = await service.pay_fine(fine_id, body or FinePaymentRequest(), current_user)
    fine = result["fine"]
    return {
        "message": "Fine paid in full" if fine.is_paid else "Partial payment recorded",
        "fine": FineBase.model_validate(fine),
        "applied_amount": result["applied_amount"],
        "change_due": result["change_due"],
    }


@router.post("/{fine_id}/dispute")
async def dispute_fine(
    fine_id: int,
    body: FineDisputeRequest,
    current_user: CurrentUser,
    service: FineServiceDep,
):
    fine = await service.dispute_fine(fine_id, body, current_user)
    return {"message": "Fine disputed", "fine": FineBase.model_validate(fine)}


@router.put("/{fine_id}/status")
async def update_fine_status(
    fine_id: int,
    body: FineStatusUpdate,
    staff: StaffUser,
    service: FineServiceDep,
):
    fine = await service.update_status(fine_id, body, staff)
    return {"message": f"Fine status updated to {fine.status}", "fine": FineBase.model_validate(fine)}
