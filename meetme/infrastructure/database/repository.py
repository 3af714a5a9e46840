# meetme/infrastructure/database/repository.py
import logging
from typing import Optional

from sqlalchemy import select, update

from meetme.domain.errors import TemplateNotFoundError
from meetme.domain.models import NormalizedFrame, PlacementState, Point, Template
from meetme.infrastructure.database import models

logger = logging.getLogger(__name__)


def to_domain(row: models.Template) -> Template:
    return Template(
        id=str(row.id),
        name=row.name,
        format=row.format,
        image_url=row.image_url,
        frame=NormalizedFrame(
            x=row.photo_frame_x,
            y=row.photo_frame_y,
            width=row.photo_frame_width,
            height=row.photo_frame_height,
        ),
        placeholder_image_url=row.placeholder_image_url,
        placeholder_scale=row.placeholder_scale,
        placeholder_x=row.placeholder_x,
        placeholder_y=row.placeholder_y,
    )


class TemplateRepository:
    """Template source and placeholder store backed by SQLAlchemy."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def get_template(self, template_id: str) -> Optional[Template]:
        async with self.session_factory() as session:
            row = await session.get(models.Template, template_id)
            if row is None:
                return None
            return to_domain(row)

    async def get_event_slug(self, event_id: str) -> Optional[str]:
        async with self.session_factory() as session:
            result = await session.execute(select(models.Event.slug).where(models.Event.id == event_id))
            return result.scalar_one_or_none()

    async def save_placement(self, template_id: str, scale: float, offset: Point) -> None:
        async with self.session_factory() as session:
            result = await session.execute(
                update(models.Template)
                .where(models.Template.id == template_id)
                .values(placeholder_scale=scale, placeholder_x=offset.x, placeholder_y=offset.y)
            )
            if result.rowcount == 0:
                raise TemplateNotFoundError(template_id)
            await session.commit()
        logger.info(f"Saved placeholder placement for template {template_id} (scale={scale:.4f})")

    async def load_placement(self, template_id: str) -> Optional[PlacementState]:
        template = await self.get_template(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        return template.placeholder
