"""Tests for the geofence store."""

import pytest

from fieldops.core import db_client
from fieldops.core.errors import InvalidGeometryError
from fieldops.domain.geofence import Position
from fieldops.domain.log import TaskAction
from fieldops.domain.task import TaskStatus
from fieldops.modules.geo import geofence_service
from fieldops.modules.tasks import service


@pytest.mark.unit
class TestGeofenceCrud:
    """Tests for create, update and deactivate."""

    async def test_create_and_get(self, patched_db):
        """Test a created geofence is active and readable."""
        created = await geofence_service.create_geofence(
            name="Warehouse", center_latitude=52.52, center_longitude=13.405, radius_meters=150
        )
        loaded = await geofence_service.get_geofence(geofence_id=created.id)

        assert loaded.name == "Warehouse"
        assert loaded.radius_meters == 150
        assert loaded.is_active

    @pytest.mark.parametrize(
        ("latitude", "longitude", "radius"),
        [(-95.0, 0.0, 100), (0.0, 200.0, 100), (0.0, 0.0, 0)],
    )
    async def test_create_rejects_bad_geometry(self, patched_db, latitude, longitude, radius):
        """Test invalid circles are not stored."""
        with pytest.raises(InvalidGeometryError):
            await geofence_service.create_geofence(
                name="Bad", center_latitude=latitude, center_longitude=longitude, radius_meters=radius
            )
        assert "geofences" not in patched_db._collections

    async def test_update_partial_centre(self, patched_db):
        """Test changing one coordinate keeps the other."""
        geofence = await geofence_service.create_geofence(
            name="Site", center_latitude=10.0, center_longitude=20.0, radius_meters=50
        )
        updated = await geofence_service.update_geofence(geofence_id=geofence.id, center_latitude=11.0)

        assert updated.center_latitude == 11.0
        assert updated.center_longitude == 20.0

    async def test_update_rejects_bad_radius(self, patched_db):
        """Test an invalid radius leaves the geofence unchanged."""
        geofence = await geofence_service.create_geofence(
            name="Site", center_latitude=10.0, center_longitude=20.0, radius_meters=50
        )
        with pytest.raises(InvalidGeometryError):
            await geofence_service.update_geofence(geofence_id=geofence.id, radius_meters=-5)

        assert (await geofence_service.get_geofence(geofence_id=geofence.id)).radius_meters == 50

    async def test_update_without_changes(self, patched_db):
        """Test an empty update returns the current geofence."""
        geofence = await geofence_service.create_geofence(
            name="Site", center_latitude=10.0, center_longitude=20.0, radius_meters=50
        )
        assert await geofence_service.update_geofence(geofence_id=geofence.id) == geofence

    async def test_deactivate_keeps_record(self, patched_db):
        """Test deactivation is soft and removes the geofence from the active list."""
        keep = await geofence_service.create_geofence(
            name="A", center_latitude=10.0, center_longitude=20.0, radius_meters=50
        )
        retire = await geofence_service.create_geofence(
            name="B", center_latitude=10.0, center_longitude=20.0, radius_meters=50
        )

        await geofence_service.deactivate_geofence(geofence_id=retire.id)

        assert not (await geofence_service.get_geofence(geofence_id=retire.id)).is_active
        assert [g.id for g in await geofence_service.list_active_geofences()] == [keep.id]

    async def test_get_missing(self, patched_db):
        """Test an unknown id raises RecordNotFoundError."""
        with pytest.raises(db_client.RecordNotFoundError):
            await geofence_service.get_geofence(geofence_id="404")


@pytest.mark.unit
class TestGeofenceQueries:
    """Tests for containment lookup and stats."""

    async def test_find_containing_sorted_by_distance(self, patched_db):
        """Test only containing active geofences are returned, nearest first."""
        wide = await geofence_service.create_geofence(
            name="Wide", center_latitude=0.001, center_longitude=0.0, radius_meters=500
        )
        tight = await geofence_service.create_geofence(
            name="Tight", center_latitude=0.0, center_longitude=0.0, radius_meters=10
        )
        await geofence_service.create_geofence(name="Far", center_latitude=1.0, center_longitude=1.0, radius_meters=50)
        hidden = await geofence_service.create_geofence(
            name="Hidden", center_latitude=0.0, center_longitude=0.0, radius_meters=50
        )
        await geofence_service.deactivate_geofence(geofence_id=hidden.id)

        matches = await geofence_service.find_containing_geofences(Position(latitude=0.0, longitude=0.0))

        assert [geofence.id for geofence, _ in matches] == [tight.id, wide.id]
        assert matches[0][1] == 0.0
        assert matches[1][1] == pytest.approx(111.19, rel=0.01)

    async def test_location_task_stats(self, patched_db):
        """Test counts over tasks with locations."""
        geofence = await geofence_service.create_geofence(
            name="Depot", center_latitude=0.0, center_longitude=0.0, radius_meters=50
        )
        fenced = await service.create_task(title="fenced")
        await service.add_task_location(task_id=fenced.id, geofence_id=geofence.id)

        custom = await service.create_task(title="custom")
        await service.add_task_location(task_id=custom.id, latitude=1.0, longitude=1.0, arrival_required=False)
        await service.transition_task(task_id=custom.id, action=TaskAction.COMPLETED)

        await service.create_task(title="no location")

        stats = await geofence_service.location_task_stats()

        assert stats.total == 2
        assert stats.active == 1
        assert stats.completed == 1
        assert stats.with_geofence == 1
        assert stats.with_custom_location == 1
        assert (await service.get_task(task_id=custom.id)).status == TaskStatus.COMPLETED
