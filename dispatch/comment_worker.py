"""
Comment request handlers.
"""
from typing import Any, Dict

from database.repositories import CommentRepository
from dispatch.subjects import COMMENTS, CREATE, DELETE, LOAD, UPDATE
from dispatch.worker import Handler, Worker
from models.messages import CreateCommentRequest, IdRequest, UpdateCommentRequest

DEFAULT_COMMENT_DEADLINE = 10.0


class CommentWorker(Worker):
    """Serves create, load, update and delete requests for comments."""

    entity = COMMENTS

    def __init__(self, broker, prefix: str, repository: CommentRepository,
                 notifier=None, deadline: float = DEFAULT_COMMENT_DEADLINE, **kwargs):
        super().__init__(broker, prefix, deadline, **kwargs)
        self.repository = repository
        self.notifier = notifier

    def handlers(self) -> Dict[str, Handler]:
        return {
            CREATE: self.create,
            LOAD: self.load,
            UPDATE: self.update,
            DELETE: self.delete,
        }

    async def create(self, data: Any) -> Dict[str, int]:
        request = CreateCommentRequest.from_dict(data)
        request.validate()

        comment = request.as_comment()
        comment_id = await self.repository.insert(comment)

        if self.audit_logger:
            self.audit_logger.log_comment_created(comment_id, comment.ticket_id, comment.owner)
        if self.notifier:
            self.run_in_background(self.notifier.comment_created(comment),
                                   f"notification for comment {comment_id}")

        return {'id': comment_id}

    async def load(self, data: Any) -> Dict[str, Any]:
        request = IdRequest.from_dict(data)
        request.validate()
        comment = await self.repository.load_by_id(request.id)
        return comment.to_dict()

    async def update(self, data: Any) -> None:
        request = UpdateCommentRequest.from_dict(data)
        request.validate()

        await self.repository.update(request.as_comment())

        if self.audit_logger:
            self.audit_logger.log_comment_updated(request.id)

    async def delete(self, data: Any) -> None:
        request = IdRequest.from_dict(data)
        request.validate()
        await self.repository.delete_by_id(request.id)

        if self.audit_logger:
            self.audit_logger.log_comment_deleted(request.id)
