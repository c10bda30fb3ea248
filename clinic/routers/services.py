from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from clinic.core.errors import Conflict, NotFound
from clinic.core.security import get_current_active_user, require_roles
from clinic.database import get_db
from clinic.models.service import Service
from clinic.models.user import User, UserRole

router = APIRouter(prefix="/api/services", tags=["services"])


class ServiceCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    duration: int = Field(gt=0)
    price: float = Field(gt=0)
    category: str = Field(min_length=1)
    is_active: Optional[bool] = None


class ServiceResponse(BaseModel):
    id: int
    name: str
    description: str
    duration: int
    price: float
    category: str
    is_active: bool

    class Config:
        from_attributes = True


def _get_service(db: Session, service_id: int) -> Service:
    service = db.query(Service).filter(Service.id == service_id).first()
    if not service:
        raise NotFound("Service not found")
    return service


@router.get("")
async def list_services(
    category: Optional[str] = None,
    is_active: Optional[bool] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    query = db.query(Service)
    if category:
        query = query.filter(Service.category == category)
    if is_active is not None:
        query = query.filter(Service.is_active.is_(is_active))

    services = query.order_by(Service.category, Service.name).all()
    return {"services": [ServiceResponse.model_validate(s) for s in services]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_service(
    service_data: ServiceCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    if db.query(Service).filter(Service.name == service_data.name).first():
        raise Conflict("Service with this name already exists")

    service = Service(**service_data.model_dump(exclude={"is_active"}))
    if service_data.is_active is not None:
        service.is_active = service_data.is_active
    db.add(service)
    db.commit()
    db.refresh(service)
    return {"message": "Service added successfully", "service": ServiceResponse.model_validate(service)}


@router.get("/{service_id}")
async def get_service(
    service_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return {"service": ServiceResponse.model_validate(_get_service(db, service_id))}


@router.put("/{service_id}")
async def update_service(
    service_id: int,
    service_data: ServiceCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    service = _get_service(db, service_id)

    if service_data.name != service.name:
        taken = db.query(Service).filter(Service.name == service_data.name, Service.id != service_id).first()
        if taken:
            raise Conflict("Service name is already in use")

    for key, value in service_data.model_dump(exclude={"is_active"}).items():
        setattr(service, key, value)
    if service_data.is_active is not None:
        service.is_active = service_data.is_active

    db.commit()
    db.refresh(service)
    return {"message": "Service updated successfully", "service": ServiceResponse.model_validate(service)}


@router.delete("/{service_id}")
async def delete_service(
    service_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    db.delete(_get_service(db, service_id))
    db.commit()
    return {"message": "Service deleted successfully"}
