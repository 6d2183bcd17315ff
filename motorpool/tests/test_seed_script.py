"""
Priority seed script tests.
"""

import pytest
import json

from motorpool import seed_queue_priority as script
from motorpool.app.services import driver_queue
from motorpool.tests.factories import make_driver


@pytest.mark.asyncio
async def test_seed_file_applies_once(db_session, test_dispatcher, tmp_path, mocker):
    await make_driver(db_session, "Anan", 1)
    await make_driver(db_session, "Preecha", 2)
    await db_session.commit()
    
    seed_file = tmp_path / "seed.json"
    seed_file.write_text(json.dumps({"version": "2024-Q1", "names": ["preecha"]}), encoding="utf-8")
    mocker.patch.object(script, "AsyncSessionLocal", test_dispatcher.session_factory)
    
    assert await script.seed_queue_priority(seed_file) is True
    assert await script.seed_queue_priority(seed_file) is False
    
    assert [d.full_name for d in await driver_queue.list_queue(db_session)] == ["Preecha", "Anan"]
