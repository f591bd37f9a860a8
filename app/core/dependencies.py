from fastapi import Request

from app.services.file_storage import FileStorage
from app.services.score_service import ScoreService
from app.services.upload_service import UploadGate
from app.services.user_service import UserService
from app.services.vote_service import VoteService
from app.storage.base import Storage


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_file_storage(request: Request) -> FileStorage:
    return request.app.state.file_storage


def get_user_service(request: Request) -> UserService:
    return UserService(request.app.state.storage)


def get_vote_service(request: Request) -> VoteService:
    return request.app.state.vote_service


def get_score_service(request: Request) -> ScoreService:
    return request.app.state.score_service


def get_upload_gate(request: Request) -> UploadGate:
    return request.app.state.upload_gate
