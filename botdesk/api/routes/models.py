"""Inference model catalog endpoint."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status

from ...db import DatabaseClient
from ..dependencies import get_database
from ..schemas import ModelInfo

router = APIRouter()


@router.get("/models", response_model=List[ModelInfo], status_code=status.HTTP_200_OK)
def list_models(db: DatabaseClient = Depends(get_database)) -> List[ModelInfo]:
    return [ModelInfo.from_document(document) for document in db.list_models()]
