import codecs
import logging
from typing import Iterator

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from migration_job.app.core.errors import MalformedInputError
from migration_job.app.core.settings import get_settings
from migration_job.app.models.run import MigrationReport
from migration_job.app.services.pipeline import MigrationPipeline

logger = logging.getLogger(__name__)
router = APIRouter()


def get_pipeline() -> Iterator[MigrationPipeline]:
    pipeline = MigrationPipeline(get_settings())
    try:
        yield pipeline
    finally:
        pipeline.close()


def _lines(upload: UploadFile):
    return codecs.getreader("utf-8-sig")(upload.file)


@router.post("/onBoardNewUsers", response_model=MigrationReport)
def onboard_new_users(file: UploadFile = File(...), pipeline: MigrationPipeline = Depends(get_pipeline)):
    """Onboard the users listed in an uploaded CSV with an ``id`` column."""
    try:
        return pipeline.onboard_users(_lines(file))
    except MalformedInputError as e:
        logger.error(f"Rejected onboarding file {file.filename}: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.exception(f"Unexpected error onboarding {file.filename}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@router.post("/updateRelationsUsers", response_model=MigrationReport)
def update_relations_users(file: UploadFile = File(...), pipeline: MigrationPipeline = Depends(get_pipeline)):
    """Upsert ``source,{props},target`` relations between existing users."""
    try:
        return pipeline.update_relations(_lines(file))
    except MalformedInputError as e:
        logger.error(f"Rejected relations file {file.filename}: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.exception(f"Unexpected error updating relations from {file.filename}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
