import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from dateutil import parser as date_parser
from loguru import logger

from app.core.exceptions import UsernameTakenError
from app.schemas.video import VideoCreate
from app.schemas.vote import VoteType
from app.services.upload_service import UploadGate
from app.storage.base import Storage
from app.utils.password import hash_password


class DataLoaderService:
    """Seeds users, videos and votes from a JSON fixture.

    Videos are checked with the same duration and category rules as uploads;
    entries that fail are logged and skipped.
    """

    def __init__(self, storage: Storage, gate: UploadGate):
        self.storage = storage
        self.gate = gate

    async def load_from_json_file(self, json_file_path: str) -> Dict[str, int]:
        file_path = Path(json_file_path)

        if not file_path.exists():
            raise FileNotFoundError(f"JSON file not found: {json_file_path}")

        logger.info(f"Loading data from {json_file_path}")

        with open(file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        return await self.load(data)

    async def load(self, data: Dict[str, Any]) -> Dict[str, int]:
        users = {}
        videos = {}
        counts = {'users': 0, 'videos': 0, 'votes': 0}

        for user_data in data.get('users', []):
            username = user_data['username']
            try:
                user = await self.storage.create_user(username, hash_password(user_data['password']))
                counts['users'] += 1
            except UsernameTakenError:
                logger.debug(f"User {username} already exists, reusing")
                user = await self.storage.get_user_by_username(username)
            users[username] = user

        for video_data in data.get('videos', []):
            try:
                owner = users[video_data['username']]
                self.gate.check_duration(int(video_data['duration']))
                category = self.gate.check_category(video_data.get('skill_category'))
                video = await self.storage.create_video(
                    VideoCreate(
                        user_id=owner.id,
                        filename=video_data['filename'],
                        original_name=video_data.get('original_name', video_data['filename']),
                        duration=int(video_data['duration']),
                        size=int(video_data.get('size', 0)),
                        skill_category=category,
                        description=video_data.get('description'),
                    ),
                    created_at=self._parse_datetime(video_data.get('created_at')),
                )
                videos[video.filename] = video
                counts['videos'] += 1
            except Exception as e:
                logger.error(f"Error processing video {video_data.get('filename', 'unknown')}: {e}")
                continue

        for vote_data in data.get('votes', []):
            try:
                voter = users[vote_data['username']]
                video = videos[vote_data['video']]
                await self.storage.create_vote(
                    voter.id,
                    video.id,
                    VoteType(vote_data['vote_type']),
                    created_at=self._parse_datetime(vote_data.get('created_at')),
                )
                counts['votes'] += 1
            except Exception as e:
                logger.error(f"Error processing vote {vote_data}: {e}")
                continue

        logger.info(
            f"Data loading completed: {counts['users']} users, "
            f"{counts['videos']} videos, {counts['votes']} votes"
        )
        return counts

    def _parse_datetime(self, date_string: Optional[str]) -> Optional[datetime]:
        if date_string is None or isinstance(date_string, datetime):
            return date_string
        parsed = date_parser.parse(date_string)
        if parsed.tzinfo is None:
            parsed = parsed.astimezone()
        return parsed
