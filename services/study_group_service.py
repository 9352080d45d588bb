import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from models import Category, StudyGroup, StudyGroupMember, StudyGroupMessage, User
from services import subscription
from services.database_service import get_database_service
from services.exceptions import AppError, ConflictError, NotFoundError, PermissionDeniedError, UsageLimitError
from services.notification_service import get_notification_service
from services.text_utils import sanitize_user_input

logger = logging.getLogger(__name__)

ROLE_CREATOR = "creator"
ROLE_MEMBER = "member"


class StudyGroupService:
    """Small peer study groups with a shared message board."""

    def __init__(self):
        self.db_service = get_database_service()
        self.notifications = get_notification_service()

    def _serialize_group(self, group: StudyGroup, membership: Optional[StudyGroupMember] = None) -> Dict[str, Any]:
        return {
            "id": group.id,
            "name": group.name,
            "description": group.description,
            "category_code": group.category_code,
            "created_by": group.created_by,
            "max_members": group.max_members,
            "member_count": group.member_count,
            "is_public": group.is_public,
            "is_full": group.member_count >= group.max_members,
            "is_member": membership is not None,
            "role": membership.role if membership else None,
            "created_at": group.created_at.isoformat() if group.created_at else None,
        }

    def _serialize_message(self, message: StudyGroupMessage, author: Optional[User] = None) -> Dict[str, Any]:
        return {
            "id": message.id,
            "group_id": message.group_id,
            "user_id": message.user_id,
            "author_name": author.full_name if author else None,
            "content": message.content,
            "created_at": message.created_at.isoformat() if message.created_at else None,
        }

    def _active_group(self, session: Session, group_id: str) -> StudyGroup:
        group = session.get(StudyGroup, group_id)
        if not group or not group.is_active:
            raise NotFoundError("Study group not found")
        return group

    def _membership(self, session: Session, group_id: str, user_id: str) -> Optional[StudyGroupMember]:
        return (
            session.query(StudyGroupMember)
            .filter(StudyGroupMember.group_id == group_id, StudyGroupMember.user_id == user_id)
            .one_or_none()
        )

    def _visible_group(self, session: Session, group_id: str, user_id: str) -> Tuple[StudyGroup, Optional[StudyGroupMember]]:
        group = self._active_group(session, group_id)
        membership = self._membership(session, group_id, user_id)
        if not group.is_public and membership is None:
            # private groups are hidden from non-members
            raise NotFoundError("Study group not found")
        return group, membership

    def _require_member(self, session: Session, group_id: str, user_id: str) -> StudyGroupMember:
        self._active_group(session, group_id)
        membership = self._membership(session, group_id, user_id)
        if membership is None:
            raise PermissionDeniedError("Only group members can do that")
        return membership

    def _check_membership_limit(self, session: Session, user_id: str) -> None:
        user = session.get(User, user_id)
        joined = (
            session.query(StudyGroupMember)
            .join(StudyGroup, StudyGroup.id == StudyGroupMember.group_id)
            .filter(StudyGroupMember.user_id == user_id, StudyGroup.is_active.is_(True))
            .count()
        )
        check = subscription.check_usage_limit(user.subscription_tier, "study_groups", joined)
        if not check["allowed"]:
            raise UsageLimitError("study_groups", check["limit"], 0,
                                  "Study group limit reached. Upgrade your plan to join more groups.")

    def create_group(self, user_id: str, name: str, description: Optional[str] = None,
                     category_code: Optional[str] = None, max_members: int = 6,
                     is_public: bool = True) -> Dict[str, Any]:
        name = sanitize_user_input(name, max_length=255)
        if not name:
            raise AppError("Group name is required")
        description = sanitize_user_input(description, max_length=2000) if description else None

        with self.db_service.session_scope() as session:
            self._check_membership_limit(session, user_id)

            if category_code:
                category = session.query(Category).filter(Category.code == category_code).first()
                if not category:
                    raise NotFoundError(f"Unknown category: {category_code}")

            group = StudyGroup(
                name=name,
                description=description or None,
                created_by=user_id,
                category_code=category_code,
                max_members=max_members,
                member_count=1,
                is_public=is_public,
            )
            session.add(group)
            session.flush()

            membership = StudyGroupMember(group_id=group.id, user_id=user_id, role=ROLE_CREATOR)
            session.add(membership)
            session.flush()

            logger.info(f"User {user_id} created study group {group.id}")
            return self._serialize_group(group, membership)

    def list_groups(self, user_id: str, page: int, limit: int, search: Optional[str] = None,
                    category_code: Optional[str] = None) -> Tuple[List[Dict[str, Any]], int]:
        with self.db_service.session_scope() as session:
            query = session.query(StudyGroup).filter(
                StudyGroup.is_active.is_(True), StudyGroup.is_public.is_(True)
            )
            if category_code:
                query = query.filter(StudyGroup.category_code == category_code)
            if search:
                pattern = f"%{search.lower()}%"
                query = query.filter(
                    or_(
                        func.lower(StudyGroup.name).like(pattern),
                        func.lower(StudyGroup.description).like(pattern),
                    )
                )

            total = query.count()
            groups = (
                query.order_by(StudyGroup.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            memberships = {
                m.group_id: m
                for m in session.query(StudyGroupMember).filter(
                    StudyGroupMember.user_id == user_id,
                    StudyGroupMember.group_id.in_([g.id for g in groups]),
                )
            } if groups else {}
            return [self._serialize_group(g, memberships.get(g.id)) for g in groups], total

    def my_groups(self, user_id: str) -> List[Dict[str, Any]]:
        with self.db_service.session_scope() as session:
            rows = (
                session.query(StudyGroup, StudyGroupMember)
                .join(StudyGroupMember, StudyGroupMember.group_id == StudyGroup.id)
                .filter(StudyGroupMember.user_id == user_id, StudyGroup.is_active.is_(True))
                .order_by(StudyGroupMember.joined_at.desc())
                .all()
            )
            return [self._serialize_group(group, membership) for group, membership in rows]

    def get_group(self, user_id: str, group_id: str) -> Dict[str, Any]:
        with self.db_service.session_scope() as session:
            group, membership = self._visible_group(session, group_id, user_id)
            members = (
                session.query(StudyGroupMember, User)
                .join(User, User.id == StudyGroupMember.user_id)
                .filter(StudyGroupMember.group_id == group.id)
                .order_by(StudyGroupMember.joined_at)
                .all()
            )
            payload = self._serialize_group(group, membership)
            payload["members"] = [
                {
                    "user_id": m.user_id,
                    "full_name": member.full_name,
                    "role": m.role,
                    "joined_at": m.joined_at.isoformat() if m.joined_at else None,
                }
                for m, member in members
            ]
            return payload

    def join_group(self, user_id: str, group_id: str) -> Dict[str, Any]:
        with self.db_service.session_scope() as session:
            group = self._active_group(session, group_id)
            if not group.is_public:
                raise PermissionDeniedError("This group is private")
            if self._membership(session, group_id, user_id) is not None:
                raise ConflictError("You are already a member of this group")
            if group.member_count >= group.max_members:
                raise ConflictError("This group is full")

            self._check_membership_limit(session, user_id)

            membership = StudyGroupMember(group_id=group.id, user_id=user_id, role=ROLE_MEMBER)
            session.add(membership)
            group.member_count = (group.member_count or 0) + 1
            session.flush()

            member = session.get(User, user_id)
            self.notifications.notify(
                session, group.created_by, "study_group_join",
                "New study group member",
                f"{member.full_name} joined \"{group.name}\"",
                f"/community/study-groups/{group.id}",
            )
            logger.info(f"User {user_id} joined study group {group.id}")
            return self._serialize_group(group, membership)

    def leave_group(self, user_id: str, group_id: str) -> None:
        with self.db_service.session_scope() as session:
            group = self._active_group(session, group_id)
            membership = self._membership(session, group_id, user_id)
            if membership is None:
                raise NotFoundError("You are not a member of this group")
            if membership.role == ROLE_CREATOR:
                raise AppError("The group creator cannot leave; delete the group instead")

            session.delete(membership)
            group.member_count = max(0, (group.member_count or 0) - 1)
            logger.info(f"User {user_id} left study group {group.id}")

    def delete_group(self, user_id: str, is_admin: bool, group_id: str) -> None:
        with self.db_service.session_scope() as session:
            group = self._active_group(session, group_id)
            if group.created_by != user_id and not is_admin:
                raise PermissionDeniedError("Only the group creator can delete this group")
            group.is_active = False
            logger.info(f"Study group {group.id} deleted by {user_id}")

    def post_message(self, user_id: str, group_id: str, content: str) -> Dict[str, Any]:
        content = sanitize_user_input(content, max_length=2000)
        if not content:
            raise AppError("Message content is required")

        with self.db_service.session_scope() as session:
            self._require_member(session, group_id, user_id)
            message = StudyGroupMessage(group_id=group_id, user_id=user_id, content=content)
            session.add(message)
            session.flush()
            return self._serialize_message(message, session.get(User, user_id))

    def list_messages(self, user_id: str, group_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        with self.db_service.session_scope() as session:
            self._require_member(session, group_id, user_id)
            rows = (
                session.query(StudyGroupMessage, User)
                .join(User, User.id == StudyGroupMessage.user_id)
                .filter(StudyGroupMessage.group_id == group_id)
                .order_by(StudyGroupMessage.created_at.desc())
                .limit(limit)
                .all()
            )
            return [self._serialize_message(m, author) for m, author in reversed(rows)]


study_group_service: Optional[StudyGroupService] = None


def get_study_group_service() -> StudyGroupService:
    global study_group_service
    if study_group_service is None:
        study_group_service = StudyGroupService()
    return study_group_service
