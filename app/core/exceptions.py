class SkillClipsError(Exception):
    pass


class UploadValidationError(SkillClipsError):
    """Rejected upload: bad type, oversized file, clip too long or missing field."""


class VideoNotFoundError(SkillClipsError):
    def __init__(self, video_id):
        super().__init__(f"Video {video_id} not found")
        self.video_id = video_id


class UsernameTakenError(SkillClipsError):
    def __init__(self, username: str):
        super().__init__("Username already exists")
        self.username = username
