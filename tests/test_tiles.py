import asyncio

from estate_map.mapview import (
    CARTO_PROVIDER,
    OSM_PROVIDER,
    FoliumMapWidget,
    MapElement,
    TileLayerManager,
    TileState,
)


def _manager(**kwargs):
    widget = FoliumMapWidget(MapElement(), (21.0278, 105.8342), 11)
    manager = TileLayerManager(widget, **kwargs)
    manager.start()
    return widget, manager


def test_three_early_errors_swap_to_fallback_exactly_once():
    widget, manager = _manager()

    for _ in range(3):
        manager.on_tile_error()

    assert manager.provider == CARTO_PROVIDER
    assert widget.tile_layers == [CARTO_PROVIDER]
    assert manager.state is TileState.LOADING
    assert manager.error_count == 0

    for _ in range(5):
        manager.on_tile_error()

    assert manager.provider == CARTO_PROVIDER
    assert widget.tile_layers == [CARTO_PROVIDER]
    assert manager.state is TileState.FAILED


def test_errors_at_threshold_keep_primary():
    widget, manager = _manager()

    manager.on_tile_error()
    manager.on_tile_error()

    assert manager.provider == OSM_PROVIDER
    assert manager.state is TileState.FAILED
    assert widget.tile_layers == [OSM_PROVIDER]


def test_errors_after_a_successful_load_do_not_swap():
    ready = []
    widget, manager = _manager(on_ready=lambda: ready.append(True))

    manager.on_tile_load()
    for _ in range(4):
        manager.on_tile_error()

    assert manager.provider == OSM_PROVIDER
    assert manager.state is TileState.ACTIVE
    assert ready == [True]


def test_safety_timeout_reveals_the_map():
    ready = []

    async def scenario():
        widget, manager = _manager(safety_timeout=0.01, on_ready=lambda: ready.append(True))
        await asyncio.sleep(0.05)
        return manager

    manager = asyncio.run(scenario())

    assert ready == [True]
    assert manager.ready
    assert manager.state is TileState.TIMED_OUT


def test_tile_load_cancels_the_safety_timer():
    ready = []

    async def scenario():
        widget, manager = _manager(safety_timeout=0.01, on_ready=lambda: ready.append(True))
        manager.on_tile_load()
        await asyncio.sleep(0.05)
        return manager

    manager = asyncio.run(scenario())

    assert ready == [True]
    assert manager.state is TileState.ACTIVE


def test_dispose_cancels_pending_timer():
    ready = []

    async def scenario():
        widget, manager = _manager(safety_timeout=0.01, on_ready=lambda: ready.append(True))
        manager.dispose()
        await asyncio.sleep(0.05)

    asyncio.run(scenario())
    assert ready == []


def test_start_outside_event_loop_skips_timer():
    widget, manager = _manager()

    assert widget.tile_layers == [OSM_PROVIDER]
    assert manager.state is TileState.LOADING
    assert not manager.ready


def test_rendered_page_carries_the_fallback_switch():
    widget, manager = _manager(safety_timeout=4)

    html = widget.to_html()

    assert "basemaps.cartocdn.com/light_all" in html
    assert "tileerror" in html
    assert "errors > 2" in html
    assert "setTimeout(finish, 4000)" in html
    assert "invalidateSize" in html


def test_page_rendered_after_the_swap_only_shows_the_fallback():
    widget, manager = _manager()
    for _ in range(3):
        manager.on_tile_error()

    html = widget.to_html()

    assert "basemaps.cartocdn.com" in html
    assert "tile.openstreetmap.org" not in html
    assert "tileerror" not in html
