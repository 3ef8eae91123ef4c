"""
Student result endpoints
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID

from assessment.api.deps import get_student_id
from assessment.database import get_db
from assessment.schemas.result import ResultResponse
from assessment.services.result_service import result_service


router = APIRouter(prefix="/api/student/results", tags=["results"])


@router.get("", response_model=List[ResultResponse])
async def list_results(
    student_id: UUID = Depends(get_student_id), db: Session = Depends(get_db)
):
    return result_service.list_results(db, student_id)


@router.get("/{result_id}", response_model=ResultResponse)
async def get_result(
    result_id: UUID,
    student_id: UUID = Depends(get_student_id),
    db: Session = Depends(get_db)
):
    return result_service.get_result(db, result_id, student_id)
