# coding: utf-8
"""
Task (mission) Service

Progress counters per (user, task), completion when the target is reached,
explicit claim that pays the reward exactly once.
"""

from datetime import timedelta
from typing import Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from config.catalog_config import DEFAULT_TASKS
from config.monetization_config import DEFAULT_BOOST_MULTIPLIER
from src.core.enums import BoostType, TaskAction, TaskRewardType, TaskUserType, TransactionType, UserRole
from src.core.exceptions import NotEligibleError, NotFoundError
from src.database.models import Boost, Task, User, UserTask
from src.services.ledger_service import LedgerService
from src.services.telegram_notifier import TelegramNotifier
from src.utils.dates import utcnow


def visible_user_types(role: UserRole) -> List[str]:
    """Task audiences a role can see"""
    role = UserRole(role)
    if role is UserRole.REGULAR:
        return [TaskUserType.REGULAR.value, TaskUserType.ALL.value]
    if role is UserRole.PERFORMER:
        return [TaskUserType.PERFORMER.value, TaskUserType.ALL.value]
    if role is UserRole.ADMIN:
        return [TaskUserType.ALL.value]
    raise ValueError(f"Unhandled role: {role}")


class TaskService:
    """Service for tasks, progress tracking and reward claims"""

    def __init__(self, ledger: LedgerService, notifier: Optional[TelegramNotifier] = None):
        self.ledger = ledger
        self.notifier = notifier or TelegramNotifier()

    @staticmethod
    async def get_user_tasks(session: AsyncSession, user: User) -> List[Dict]:
        """
        Active tasks visible to the user with their progress

        Returns:
            List of dicts (task fields + progress/completed/reward_claimed/user_task_id)
        """
        stmt = (
            select(Task)
            .where(Task.is_active.is_(True), Task.user_type.in_(visible_user_types(user.role)))
            .order_by(Task.id)
        )
        tasks = list((await session.execute(stmt)).scalars().all())

        progress_stmt = select(UserTask).where(UserTask.user_id == user.id)
        progress = {ut.task_id: ut for ut in (await session.execute(progress_stmt)).scalars().all()}

        items = []
        for task in tasks:
            user_task = progress.get(task.id)
            items.append({
                "id": task.id,
                "title": task.title,
                "description": task.description,
                "type": task.type,
                "action_type": task.action_type,
                "target_count": task.target_count,
                "reward_type": task.reward_type,
                "reward_amount": task.reward_amount,
                "user_task_id": user_task.id if user_task else None,
                "progress": user_task.progress if user_task else 0,
                "completed": user_task.completed if user_task else False,
                "reward_claimed": user_task.reward_claimed if user_task else False,
            })
        return items

    @staticmethod
    async def _get_or_create_user_task(
        session: AsyncSession, user_id: int, task_id: int
    ) -> UserTask:
        stmt = select(UserTask).where(UserTask.user_id == user_id, UserTask.task_id == task_id)
        user_task = (await session.execute(stmt)).scalar_one_or_none()
        if user_task is None:
            user_task = UserTask(user_id=user_id, task_id=task_id, progress=0)
            session.add(user_task)
            await session.flush()
        return user_task

    async def add_progress(
        self, session: AsyncSession, user_id: int, task: Task, count: int = 1
    ) -> Optional[UserTask]:
        """
        Increment progress of one task (does not commit)

        Returns:
            The UserTask if this call completed the task, None otherwise
        """
        user_task = await self._get_or_create_user_task(session, user_id, task.id)
        if user_task.completed:
            return None

        user_task.progress += count
        if user_task.progress >= task.target_count:
            user_task.completed = True
            user_task.completed_at = utcnow()
            await session.flush()
            logger.info(f"Task {task.id} completed by user {user_id}")
            return user_task

        await session.flush()
        return None

    async def track_progress(
        self,
        session: AsyncSession,
        user: User,
        action: TaskAction,
        count: int = 1,
    ) -> List[Task]:
        """
        Advance every active task of the user driven by `action` and commit

        Progress tracking runs after the money flow committed; a failure
        here is logged and does not undo the payment. The work runs in a
        SAVEPOINT: rolling it back expires only the rows touched inside it,
        the caller's committed Message/GiftTransaction/User stay loaded.

        Returns:
            Tasks completed by this call
        """
        action = TaskAction(action)
        user_id, telegram_id, role = user.id, user.telegram_id, user.role
        completed: List[Task] = []
        try:
            async with session.begin_nested():
                stmt = select(Task).where(
                    Task.is_active.is_(True),
                    Task.action_type == action.value,
                    Task.user_type.in_(visible_user_types(role)),
                )
                tasks = list((await session.execute(stmt)).scalars().all())
                for task in tasks:
                    if await self.add_progress(session, user_id, task, count):
                        completed.append(task)
        except IntegrityError:
            # uq_user_task: параллельный запрос создал запись первым
            completed = []
            logger.warning(f"Concurrent task progress for user {user_id} ({action.value}), skipped")
        except Exception as e:
            completed = []
            logger.exception(f"Error tracking task progress for user {user_id}: {e}")

        # commit, не rollback: rollback внешней транзакции expire-ит всё
        await session.commit()

        for task in completed:
            await self.notifier.task_completed(telegram_id, task.title)
        return completed

    async def claim_reward(self, session: AsyncSession, user: User, user_task_id: int) -> Dict:
        """
        Pay the reward of a completed task

        The reward_claimed flag flips with a conditional UPDATE, a second
        claim (or a concurrent one) affects zero rows and is rejected.

        Raises:
            NotFoundError: no such task for this user
            NotEligibleError: not completed or already claimed
        """
        stmt = select(UserTask).where(UserTask.id == user_task_id, UserTask.user_id == user.id)
        user_task = (await session.execute(stmt)).scalar_one_or_none()
        if user_task is None:
            raise NotFoundError("Task", user_task_id)

        task = await session.get(Task, user_task.task_id)
        if task is None:
            raise NotFoundError("Task", user_task.task_id)

        async with self.ledger.atomic(session):
            flip = (
                update(UserTask)
                .where(
                    UserTask.id == user_task_id,
                    UserTask.completed.is_(True),
                    UserTask.reward_claimed.is_(False),
                )
                .values(reward_claimed=True)
                .execution_options(synchronize_session=False)
            )
            if (await session.execute(flip)).rowcount == 0:
                raise NotEligibleError("Task reward is not available")

            reward_type = TaskRewardType(task.reward_type)
            if reward_type is TaskRewardType.COINS:
                await self.ledger.credit(
                    session,
                    user.id,
                    task.reward_amount,
                    f"Task reward: {task.title}",
                    transaction_type=TransactionType.EARN,
                    metadata={"task_id": task.id, "user_task_id": user_task_id},
                    commit=False,
                )
            elif reward_type is TaskRewardType.BOOST:
                session.add(Boost(
                    user_id=user.id,
                    type=BoostType.PROFILE.value,
                    multiplier=DEFAULT_BOOST_MULTIPLIER,
                    source="task",
                    expires_at=utcnow() + timedelta(hours=task.reward_amount),
                ))

        logger.info(f"Task reward claimed: user {user.id} task {task.id} ({task.reward_type} {task.reward_amount})")
        return {
            "claimed": True,
            "reward_type": task.reward_type,
            "reward_amount": task.reward_amount,
        }

    @staticmethod
    async def create_task(session: AsyncSession, **fields) -> Task:
        task = Task(**{k: (v.value if hasattr(v, "value") else v) for k, v in fields.items()})
        session.add(task)
        await session.commit()
        await session.refresh(task)
        return task

    @classmethod
    async def initialize_default_tasks(cls, session: AsyncSession) -> int:
        """
        Seed DEFAULT_TASKS on an empty tasks table

        Returns:
            Number of tasks created
        """
        existing = (await session.execute(select(Task.id).limit(1))).scalar_one_or_none()
        if existing is not None:
            return 0

        for task_data in DEFAULT_TASKS:
            session.add(Task(**{k: (v.value if hasattr(v, "value") else v) for k, v in task_data.items()}))
        await session.commit()
        logger.info(f"Default tasks initialized ({len(DEFAULT_TASKS)})")
        return len(DEFAULT_TASKS)
