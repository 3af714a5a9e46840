import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from meetme.config.database import init_db
from meetme.domain.errors import TemplateNotFoundError
from meetme.domain.models import Point, TemplateFormat
from meetme.infrastructure.database import models
from meetme.infrastructure.database.repository import TemplateRepository


@pytest.fixture
async def repository(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'meetme.db'}")
    await init_db(bind=engine)
    session_factory = sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        session.add(models.Event(id="evt-1", name="Summit", slug="summit-24"))
        session.add(
            models.Template(
                id="tpl-1",
                event_id="evt-1",
                name="Speaker Card",
                format="portrait",
                image_url="https://cdn.example.com/speaker.png",
                photo_frame_x=0.1,
                photo_frame_y=0.2,
                photo_frame_width=0.5,
                photo_frame_height=0.4,
            )
        )
        await session.commit()

    yield TemplateRepository(session_factory)
    await engine.dispose()


async def test_get_template_maps_row(repository):
    template = await repository.get_template("tpl-1")

    assert template.name == "Speaker Card"
    assert template.format == TemplateFormat.PORTRAIT
    assert template.frame.x == pytest.approx(0.1)
    assert template.frame.height == pytest.approx(0.4)
    assert template.placeholder is None


async def test_missing_template(repository):
    assert await repository.get_template("nope") is None
    with pytest.raises(TemplateNotFoundError):
        await repository.load_placement("nope")
    with pytest.raises(TemplateNotFoundError):
        await repository.save_placement("nope", 1.0, Point(0, 0))


async def test_event_slug(repository):
    assert await repository.get_event_slug("evt-1") == "summit-24"
    assert await repository.get_event_slug("evt-2") is None


async def test_placement_round_trip(repository):
    assert await repository.load_placement("tpl-1") is None

    await repository.save_placement("tpl-1", 0.75, Point(-12.5, -40.0))

    placement = await repository.load_placement("tpl-1")
    assert placement.scale == pytest.approx(0.75)
    assert placement.offset == Point(-12.5, -40.0)
    template = await repository.get_template("tpl-1")
    assert template.placeholder_x == pytest.approx(-12.5)
