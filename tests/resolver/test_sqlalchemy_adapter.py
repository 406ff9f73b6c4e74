from contextlib import asynccontextmanager
from typing import Annotated, Optional
import pytest
from pydantic import BaseModel, ConfigDict
from sqlalchemy import ForeignKey, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from pydantic_factory import BaseFactory, Pk, Fk, Required, PersistenceAdapter, PersistenceFailure


class Base(DeclarativeBase):
    pass

class PersonRow(Base):
    __tablename__ = "person"
    id: Mapped[int] = mapped_column(primary_key=True)
    first_name: Mapped[str]
    last_name: Mapped[Optional[str]]

class NoteRow(Base):
    __tablename__ = "note"
    id: Mapped[int] = mapped_column(primary_key=True)
    person_id: Mapped[int] = mapped_column(ForeignKey("person.id"))
    content: Mapped[str]

class MappingRow(Base):
    __tablename__ = "person_note_mapping"
    id: Mapped[int] = mapped_column(primary_key=True)
    person_id: Mapped[Optional[int]] = mapped_column(ForeignKey("person.id"))
    note_id: Mapped[Optional[int]] = mapped_column(ForeignKey("note.id"))


class Person(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    first_name: str
    last_name: Optional[str] = None

class Note(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    person_id: int
    content: str

class PersonNoteMapping(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    person_id: Optional[int] = None
    note_id: Optional[int] = None


class PersonFactory(BaseFactory):
    __entity__ = Person
    id: Annotated[int, Pk()]
    first_name: Annotated[str, Required()] = 'Auto-Generated'
    last_name: Optional[str]

class NoteFactory(BaseFactory):
    __entity__ = Note
    id: Annotated[int, Pk()]
    person_id: Annotated[int, Fk(Person, 'id', PersonFactory)]
    content: Annotated[str, Required()] = 'Default note content'

class PersonNoteMappingFactory(BaseFactory):
    __entity__ = PersonNoteMapping
    id: Annotated[int, Pk()]
    person_id: Annotated[Optional[int], Fk(Person, 'id', PersonFactory)] = None
    note_id: Annotated[Optional[int], Fk(Note, 'id', NoteFactory, no_default=True)] = None


ROWS = {Person: PersonRow, Note: NoteRow, PersonNoteMapping: MappingRow}

class SqlAlchemyAdapter(PersistenceAdapter[AsyncSession]):
    async def persist(self, entity, session: AsyncSession):
        row = ROWS[type(entity)](**entity.model_dump(exclude={'id'}))
        session.add(row)
        await session.flush()
        return type(entity).model_validate(row)

class BrokenNoteAdapter(SqlAlchemyAdapter):
    async def persist(self, entity, session: AsyncSession):
        if isinstance(entity, Note):
            raise RuntimeError('note table is locked')
        return await super().persist(entity, session)


@asynccontextmanager
async def open_session():
    engine = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(engine, expire_on_commit=False)
    async with async_session() as session:
        yield session
    await engine.dispose()


async def count(session, row_kls) -> int:
    return await session.scalar(select(func.count()).select_from(row_kls))


adapter = SqlAlchemyAdapter()


@pytest.mark.asyncio
async def test_auto_creates_fk_dependency():
    async with open_session() as session:
        note = await NoteFactory().with_content('This is a test note').create(session, adapter=adapter)

        assert note.id > 0
        assert note.content == 'This is a test note'
        assert await count(session, PersonRow) == 1

        person = await session.get(PersonRow, note.person_id)
        assert person.first_name == 'Auto-Generated'


@pytest.mark.asyncio
async def test_uses_explicit_fk():
    async with open_session() as session:
        person = await PersonFactory().with_first_name('John').with_last_name('Doe') \
            .create(session, adapter=adapter)
        assert person.last_name == 'Doe'

        note = await NoteFactory().with_person(person).with_content('Note for John') \
            .create(session, adapter=adapter)
        assert note.person_id == person.id
        assert await count(session, PersonRow) == 1


@pytest.mark.asyncio
async def test_multiple_notes_same_person():
    async with open_session() as session:
        person = await PersonFactory().with_first_name('Bob').create(session, adapter=adapter)

        note1 = await NoteFactory().with_person_id(person.id).create(session, adapter=adapter)
        note2 = await NoteFactory().with_person_id(person.id).create(session, adapter=adapter)

        assert note1.person_id == note2.person_id == person.id
        assert note1.id != note2.id
        assert await count(session, PersonRow) == 1


@pytest.mark.asyncio
async def test_multiple_notes_no_person():
    async with open_session() as session:
        await NoteFactory().with_content('First Note').create(session, adapter=adapter)
        await NoteFactory().with_content('Second Note').create(session, adapter=adapter)
        assert await count(session, PersonRow) == 2


@pytest.mark.asyncio
async def test_no_default_flag():
    async with open_session() as session:
        mapping = await PersonNoteMappingFactory().create(session, adapter=adapter)

        assert mapping.person_id is not None
        assert mapping.note_id is None
        # note would have created a person as well
        assert await count(session, NoteRow) == 0
        assert await count(session, PersonRow) == 1


@pytest.mark.asyncio
async def test_no_default_flag_keeps_inner_sentinel():
    async with open_session() as session:
        mapping = await PersonNoteMappingFactory().with_note_id(0).create(session, adapter=adapter)

        assert mapping.note_id == 0
        assert await count(session, NoteRow) == 0
        assert await count(session, PersonRow) == 1


@pytest.mark.asyncio
async def test_caller_transaction_rolls_back_the_chain():
    async with open_session() as session:
        with pytest.raises(PersistenceFailure, match='note table is locked'):
            async with session.begin():
                await NoteFactory().create(session, adapter=BrokenNoteAdapter())

        assert await count(session, PersonRow) == 0
