import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from models import DiscussionCategory, DiscussionComment, DiscussionPost, DiscussionReaction, User
from services.database_service import get_database_service
from services.exceptions import AppError, NotFoundError, PermissionDeniedError
from services.gamification_service import get_gamification_service
from services.notification_service import get_notification_service
from services.text_utils import generate_post_slug, sanitize_user_input

logger = logging.getLogger(__name__)

SORT_OPTIONS = ("newest", "popular", "unanswered")
POST_TYPES = ("discussion", "question", "tip", "success_story")


class DiscussionService:
    """Community forum: posts, comments and likes."""

    def __init__(self):
        self.db_service = get_database_service()
        self.gamification = get_gamification_service()
        self.notifications = get_notification_service()

    def _serialize_category(self, category: DiscussionCategory) -> Dict[str, Any]:
        return {
            "id": category.id,
            "name": category.name,
            "slug": category.slug,
            "description": category.description,
            "post_count": category.post_count,
        }

    def _serialize_post(self, post: DiscussionPost, author: Optional[User] = None,
                        category: Optional[DiscussionCategory] = None) -> Dict[str, Any]:
        payload = {
            "id": post.id,
            "slug": post.slug,
            "title": post.title,
            "content": post.content,
            "post_type": post.post_type,
            "status": post.status,
            "category_id": post.category_id,
            "author_id": post.author_id,
            "view_count": post.view_count,
            "like_count": post.like_count,
            "comment_count": post.comment_count,
            "is_pinned": post.is_pinned,
            "created_at": post.created_at.isoformat() if post.created_at else None,
            "updated_at": post.updated_at.isoformat() if post.updated_at else None,
        }
        if author is not None:
            payload["author_name"] = author.full_name
        if category is not None:
            payload["category_name"] = category.name
            payload["category_slug"] = category.slug
        return payload

    def _serialize_comment(self, comment: DiscussionComment, author: Optional[User] = None) -> Dict[str, Any]:
        return {
            "id": comment.id,
            "post_id": comment.post_id,
            "parent_id": comment.parent_id,
            "author_id": comment.author_id,
            "author_name": author.full_name if author else None,
            "content": comment.content,
            "created_at": comment.created_at.isoformat() if comment.created_at else None,
        }

    def _published_post(self, session: Session, slug: str) -> DiscussionPost:
        post = (
            session.query(DiscussionPost)
            .filter(DiscussionPost.slug == slug, DiscussionPost.status == "published")
            .one_or_none()
        )
        if not post:
            raise NotFoundError("Post not found")
        return post

    def list_categories(self) -> List[Dict[str, Any]]:
        with self.db_service.session_scope() as session:
            categories = (
                session.query(DiscussionCategory)
                .filter(DiscussionCategory.is_active.is_(True))
                .order_by(DiscussionCategory.display_order)
                .all()
            )
            return [self._serialize_category(c) for c in categories]

    def list_posts(
        self,
        page: int,
        limit: int,
        category_slug: Optional[str] = None,
        search: Optional[str] = None,
        sort: str = "newest",
    ) -> Tuple[List[Dict[str, Any]], int]:
        with self.db_service.session_scope() as session:
            query = (
                session.query(DiscussionPost, User, DiscussionCategory)
                .join(User, User.id == DiscussionPost.author_id)
                .join(DiscussionCategory, DiscussionCategory.id == DiscussionPost.category_id)
                .filter(DiscussionPost.status == "published")
            )
            if category_slug:
                query = query.filter(DiscussionCategory.slug == category_slug)
            if search:
                pattern = f"%{search.lower()}%"
                query = query.filter(
                    or_(
                        func.lower(DiscussionPost.title).like(pattern),
                        func.lower(DiscussionPost.content).like(pattern),
                    )
                )

            if sort == "popular":
                order = [DiscussionPost.like_count.desc(), DiscussionPost.created_at.desc()]
            elif sort == "unanswered":
                order = [DiscussionPost.comment_count.asc(), DiscussionPost.created_at.desc()]
            else:
                order = [DiscussionPost.created_at.desc()]

            total = query.count()
            rows = (
                query.order_by(DiscussionPost.is_pinned.desc(), *order)
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            return [self._serialize_post(post, author, category) for post, author, category in rows], total

    def create_post(self, user_id: str, category_id: int, title: str, content: str,
                    post_type: str = "discussion") -> Dict[str, Any]:
        title = sanitize_user_input(title, max_length=255)
        content = sanitize_user_input(content)
        if not title or not content:
            raise AppError("Title and content are required")

        with self.db_service.session_scope() as session:
            category = session.get(DiscussionCategory, category_id)
            if not category or not category.is_active:
                raise NotFoundError("Discussion category not found")

            slug = generate_post_slug(title)
            suffix = 1
            while session.query(DiscussionPost.id).filter(DiscussionPost.slug == slug).first():
                suffix += 1
                slug = f"{generate_post_slug(title)}-{suffix}"

            post = DiscussionPost(
                author_id=user_id,
                category_id=category.id,
                title=title,
                content=content,
                slug=slug,
                post_type=post_type,
            )
            session.add(post)
            category.post_count = (category.post_count or 0) + 1
            session.flush()

            self.gamification.award_xp(session, user_id, "discussion_post")
            logger.info(f"User {user_id} created discussion post {post.id}")
            return self._serialize_post(post, session.get(User, user_id), category)

    def get_post(self, slug: str) -> Dict[str, Any]:
        with self.db_service.session_scope() as session:
            post = self._published_post(session, slug)
            post.view_count = (post.view_count or 0) + 1

            comments = (
                session.query(DiscussionComment, User)
                .join(User, User.id == DiscussionComment.author_id)
                .filter(DiscussionComment.post_id == post.id, DiscussionComment.is_deleted.is_(False))
                .order_by(DiscussionComment.created_at)
                .all()
            )
            payload = self._serialize_post(
                post, session.get(User, post.author_id), session.get(DiscussionCategory, post.category_id)
            )
            payload["comments"] = [self._serialize_comment(c, author) for c, author in comments]
            return payload

    def add_comment(self, user_id: str, slug: str, content: str, parent_id: Optional[str] = None) -> Dict[str, Any]:
        content = sanitize_user_input(content)
        if not content:
            raise AppError("Comment content is required")

        with self.db_service.session_scope() as session:
            post = self._published_post(session, slug)
            if parent_id:
                parent = session.get(DiscussionComment, parent_id)
                if not parent or parent.post_id != post.id or parent.is_deleted:
                    raise NotFoundError("Parent comment not found")

            comment = DiscussionComment(post_id=post.id, author_id=user_id, parent_id=parent_id, content=content)
            session.add(comment)
            post.comment_count = (post.comment_count or 0) + 1
            session.flush()

            author = session.get(User, user_id)
            if post.author_id != user_id:
                self.notifications.notify(
                    session, post.author_id, "discussion_reply",
                    "New reply to your post",
                    f"{author.full_name} replied to \"{post.title}\"",
                    f"/community/discussions/{post.slug}",
                )
            self.gamification.award_xp(session, user_id, "discussion_reply")
            return self._serialize_comment(comment, author)

    def toggle_like(self, user_id: str, slug: str) -> Dict[str, Any]:
        with self.db_service.session_scope() as session:
            post = self._published_post(session, slug)
            reaction = (
                session.query(DiscussionReaction)
                .filter(
                    DiscussionReaction.user_id == user_id,
                    DiscussionReaction.post_id == post.id,
                    DiscussionReaction.reaction_type == "like",
                )
                .one_or_none()
            )
            if reaction:
                session.delete(reaction)
                post.like_count = max(0, (post.like_count or 0) - 1)
                liked = False
            else:
                session.add(DiscussionReaction(user_id=user_id, post_id=post.id, reaction_type="like"))
                post.like_count = (post.like_count or 0) + 1
                liked = True
            return {"liked": liked, "like_count": post.like_count}

    def delete_post(self, user_id: str, is_admin: bool, slug: str) -> None:
        with self.db_service.session_scope() as session:
            post = self._published_post(session, slug)
            if post.author_id != user_id and not is_admin:
                raise PermissionDeniedError("You can only delete your own posts")
            post.status = "deleted"
            category = session.get(DiscussionCategory, post.category_id)
            if category and category.post_count:
                category.post_count -= 1
            logger.info(f"Discussion post {post.id} deleted by {user_id}")

    def delete_comment(self, user_id: str, is_admin: bool, comment_id: str) -> None:
        with self.db_service.session_scope() as session:
            comment = session.get(DiscussionComment, comment_id)
            if not comment or comment.is_deleted:
                raise NotFoundError("Comment not found")
            if comment.author_id != user_id and not is_admin:
                raise PermissionDeniedError("You can only delete your own comments")
            comment.is_deleted = True
            post = session.get(DiscussionPost, comment.post_id)
            if post and post.comment_count:
                post.comment_count -= 1


discussion_service: Optional[DiscussionService] = None


def get_discussion_service() -> DiscussionService:
    global discussion_service
    if discussion_service is None:
        discussion_service = DiscussionService()
    return discussion_service
