"""Tests for the shot catalog builder and its sources."""

import json
from pathlib import Path

import httpx
import pytest

from pixeldrift.catalog.builder import build_catalog, check_sources, expand_breakpoints, finalize_targets
from pixeldrift.errors import ConfigurationError, DiscoveryError
from pixeldrift.models.config import (
    CustomShotsConfig,
    HistoireShotsConfig,
    LadleShotsConfig,
    MaskConfig,
    PageShotConfig,
    PageShotsConfig,
    RunConfig,
    StorybookShotsConfig,
)
from pixeldrift.models.shot import ShotHooks, ShotSource


def _client(routes: dict[str, object]) -> httpx.AsyncClient:
    """AsyncClient answering from a url -> JSON (or status code / exception) map."""

    def handler(request: httpx.Request) -> httpx.Response:
        answer = routes.get(str(request.url))
        if answer is None:
            return httpx.Response(404)
        if isinstance(answer, Exception):
            raise answer
        if isinstance(answer, int):
            return httpx.Response(answer)
        return httpx.Response(200, json=answer)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _pages_config(**kwargs) -> RunConfig:
    pages = kwargs.pop("pages", [PageShotConfig(path="/", name="home")])
    page_kwargs = {k: kwargs.pop(k) for k in ("pages_json_url", "mask") if k in kwargs}
    page_breakpoints = kwargs.pop("page_breakpoints", None)
    return RunConfig(
        page_shots=PageShotsConfig(
            base_url="http://localhost:3000", pages=pages,
            breakpoints=page_breakpoints, **page_kwargs,
        ),
        **kwargs,
    )


# ============================================================================
# Source selection
# ============================================================================


class TestCheckSources:
    def test_no_source_is_fatal(self):
        with pytest.raises(ConfigurationError, match="No shot source"):
            check_sources(RunConfig())

    def test_two_families_rejected(self, tmp_path):
        config = _pages_config(custom_shots=CustomShotsConfig(current_shots_path=str(tmp_path)))
        with pytest.raises(ConfigurationError, match="Only one shot source"):
            check_sources(config)

    def test_storybook_and_ladle_rejected(self):
        config = RunConfig(
            storybook_shots=StorybookShotsConfig(storybook_url="http://sb"),
            ladle_shots=LadleShotsConfig(ladle_url="http://ladle"),
        )
        with pytest.raises(ConfigurationError):
            check_sources(config)

    def test_custom_folder_must_differ_from_current(self, tmp_path):
        config = RunConfig(
            custom_shots=CustomShotsConfig(current_shots_path=str(tmp_path / "current")),
            image_path_current=str(tmp_path / "current"),
        )
        with pytest.raises(ConfigurationError, match="must differ"):
            check_sources(config)

    def test_custom_folder_nested_in_current_rejected(self, tmp_path):
        config = RunConfig(
            custom_shots=CustomShotsConfig(current_shots_path=str(tmp_path / "out" / "current" / "shots")),
            image_path_current=str(tmp_path / "out" / "current"),
        )
        with pytest.raises(ConfigurationError, match="image_path_current"):
            check_sources(config)

    def test_custom_folder_nested_in_difference_rejected(self, tmp_path):
        config = RunConfig(
            custom_shots=CustomShotsConfig(current_shots_path=str(tmp_path / "difference" / "shots")),
            image_path_current=str(tmp_path / "current"),
            image_path_difference=str(tmp_path / "difference"),
        )
        with pytest.raises(ConfigurationError, match="image_path_difference"):
            check_sources(config)

    def test_image_tree_inside_custom_folder_rejected(self, tmp_path):
        config = RunConfig(
            custom_shots=CustomShotsConfig(current_shots_path=str(tmp_path / "shots")),
            image_path_current=str(tmp_path / "shots" / "current"),
        )
        with pytest.raises(ConfigurationError, match="must not be nested"):
            check_sources(config)

    def test_sibling_custom_folder_accepted(self, tmp_path):
        config = RunConfig(
            custom_shots=CustomShotsConfig(current_shots_path=str(tmp_path / "shots")),
            image_path_current=str(tmp_path / "shots-current"),
            image_path_difference=str(tmp_path / "difference"),
        )
        check_sources(config)

    def test_two_story_catalogs_rejected(self):
        config = RunConfig(
            ladle_shots=LadleShotsConfig(ladle_url="http://ladle"),
            histoire_shots=HistoireShotsConfig(histoire_url="http://histoire"),
        )
        with pytest.raises(ConfigurationError, match="ladle_shots and histoire_shots cannot be combined"):
            check_sources(config)

    @pytest.mark.asyncio
    async def test_build_catalog_fails_before_any_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=[])

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(ConfigurationError):
                await build_catalog(RunConfig(), client=client)
        assert calls == []


# ============================================================================
# Page sources and merging
# ============================================================================


class TestPageSource:
    @pytest.mark.asyncio
    async def test_explicit_pages(self):
        config = _pages_config(pages=[
            PageShotConfig(path="/", name="home"),
            PageShotConfig(path="/about", name="about"),
        ])
        async with _client({}) as client:
            targets = await build_catalog(config, client=client)
        assert [t.id for t in targets] == ["home", "about"]
        assert targets[1].url == "http://localhost:3000/about"
        assert all(t.source == ShotSource.EXPLICIT_PAGE for t in targets)

    @pytest.mark.asyncio
    async def test_global_settings_apply_unless_overridden(self):
        config = _pages_config(
            threshold=0.05,
            wait_before_screenshot=300,
            pages=[
                PageShotConfig(path="/", name="home"),
                PageShotConfig(path="/login", name="login", threshold=0.2, wait_before_screenshot=50),
            ],
        )
        async with _client({}) as client:
            home, login = await build_catalog(config, client=client)
        assert home.threshold == 0.05
        assert home.wait_before_capture == 300
        assert login.threshold == 0.2
        assert login.wait_before_capture == 50

    @pytest.mark.asyncio
    async def test_page_masks_replace_source_masks(self):
        config = _pages_config(
            mask=[MaskConfig(selector=".ad")],
            pages=[
                PageShotConfig(path="/", name="home"),
                PageShotConfig(path="/news", name="news", mask=[MaskConfig(selector=".clock")]),
            ],
        )
        async with _client({}) as client:
            home, news = await build_catalog(config, client=client)
        assert [m.selector for m in home.masks] == [".ad"]
        assert [m.selector for m in news.masks] == [".clock"]

    @pytest.mark.asyncio
    async def test_run_mask_applies_without_source_mask(self):
        config = RunConfig(
            mask=[MaskConfig(selector=".cookie-banner")],
            page_shots=PageShotsConfig(base_url="http://localhost:3000", pages=[
                PageShotConfig(path="/", name="home"),
                PageShotConfig(path="/news", name="news", mask=[MaskConfig(selector=".clock")]),
            ]),
        )
        async with _client({}) as client:
            home, news = await build_catalog(config, client=client)
        assert [m.selector for m in home.masks] == [".cookie-banner"]
        assert [m.selector for m in news.masks] == [".clock"]

    @pytest.mark.asyncio
    async def test_source_mask_replaces_run_mask(self):
        config = RunConfig(
            mask=[MaskConfig(selector=".cookie-banner")],
            page_shots=PageShotsConfig(
                base_url="http://localhost:3000",
                pages=[PageShotConfig(path="/", name="home")],
                mask=[MaskConfig(x=0, y=0, width=10, height=10)],
            ),
        )
        async with _client({}) as client:
            (home,) = await build_catalog(config, client=client)
        assert len(home.masks) == 1
        assert home.masks[0].is_rect

    @pytest.mark.asyncio
    async def test_viewport_override_is_per_field(self):
        config = _pages_config(pages=[
            PageShotConfig(path="/", name="home", viewport={"height": 900}),
        ])
        async with _client({}) as client:
            (home,) = await build_catalog(config, client=client)
        assert home.viewport.width == 1280
        assert home.viewport.height == 900

    @pytest.mark.asyncio
    async def test_remote_page_list_is_appended(self):
        config = _pages_config(pages_json_url="http://pages.test/list.json")
        routes = {"http://pages.test/list.json": [
            {"path": "/pricing", "name": "pricing", "waitBeforeScreenshot": 10, "threshold": 3},
        ]}
        async with _client(routes) as client:
            targets = await build_catalog(config, client=client)
        assert [t.id for t in targets] == ["home", "pricing"]
        pricing = targets[1]
        assert pricing.source == ShotSource.REMOTE_PAGE_LIST
        assert pricing.wait_before_capture == 10
        assert pricing.threshold == 3

    @pytest.mark.asyncio
    async def test_remote_page_list_http_error_is_fatal(self):
        config = _pages_config(pages_json_url="http://pages.test/list.json")
        async with _client({"http://pages.test/list.json": 500}) as client:
            with pytest.raises(DiscoveryError, match="pages_json_url"):
                await build_catalog(config, client=client)

    @pytest.mark.asyncio
    async def test_remote_page_list_timeout_is_fatal(self):
        config = _pages_config(pages_json_url="http://pages.test/list.json")
        routes = {"http://pages.test/list.json": httpx.ReadTimeout("slow")}
        async with _client(routes) as client:
            with pytest.raises(DiscoveryError, match="timed out"):
                await build_catalog(config, client=client)

    @pytest.mark.asyncio
    async def test_remote_page_list_schema_error_is_fatal(self):
        config = _pages_config(pages_json_url="http://pages.test/list.json")
        routes = {"http://pages.test/list.json": [{"path": "/no-name"}]}
        async with _client(routes) as client:
            with pytest.raises(DiscoveryError, match="page schema"):
                await build_catalog(config, client=client)


# ============================================================================
# Breakpoints, dedup, hooks
# ============================================================================


class TestBreakpoints:
    @pytest.mark.asyncio
    async def test_global_breakpoints_expand_every_page(self):
        config = _pages_config(breakpoints=[320, 1280])
        async with _client({}) as client:
            targets = await build_catalog(config, client=client)
        assert [t.target_key for t in targets] == ["home__w320", "home__w1280"]
        assert [t.viewport.width for t in targets] == [320, 1280]
        assert {t.id for t in targets} == {"home"}

    @pytest.mark.asyncio
    async def test_page_breakpoints_take_precedence(self):
        config = _pages_config(
            breakpoints=[320],
            page_breakpoints=[640],
            pages=[
                PageShotConfig(path="/", name="home"),
                PageShotConfig(path="/a", name="a", breakpoints=[768, 1024]),
            ],
        )
        async with _client({}) as client:
            targets = await build_catalog(config, client=client)
        assert [t.target_key for t in targets] == ["home__w640", "a__w768", "a__w1024"]

    def test_no_breakpoints_keeps_single_target(self, make_target):
        target = make_target()
        assert expand_breakpoints(target) == [target]


class TestFinalizeTargets:
    def test_duplicate_ids_keep_first(self, make_target):
        first = make_target("home", threshold=0.1)
        second = make_target("home", threshold=0.9)
        result = finalize_targets([first, second, make_target("about")])
        assert [t.id for t in result] == ["home", "about"]
        assert result[0].threshold == 0.1

    def test_colliding_keys_dropped(self, make_target):
        a = make_target("a/b")
        b = make_target("a b")
        result = finalize_targets([a, b])
        assert len(result) == 1
        assert result[0].id == "a/b"

    def test_filter_hook(self, make_target):
        hooks = ShotHooks(filter_shot=lambda t: t.id != "skip-me")
        result = finalize_targets([make_target("keep"), make_target("skip-me")], hooks)
        assert [t.id for t in result] == ["keep"]

    def test_shot_name_hook(self, make_target):
        hooks = ShotHooks(shot_name=lambda t: f"custom-{t.id}")
        (result,) = finalize_targets([make_target("home")], hooks)
        assert result.display_name == "custom-home"
        assert result.target_key == "custom-home"


# ============================================================================
# Story catalogs
# ============================================================================


class TestStorybookSource:
    @pytest.mark.asyncio
    async def test_local_index_json(self, tmp_path):
        (tmp_path / "index.json").write_text(json.dumps({
            "v": 5,
            "entries": {
                "button--primary": {"id": "button--primary", "type": "story",
                                    "title": "Example/Button", "name": "Primary"},
                "button--docs": {"id": "button--docs", "type": "docs",
                                 "title": "Example/Button", "name": "Docs"},
            },
        }))
        config = RunConfig(storybook_shots=StorybookShotsConfig(storybook_url=str(tmp_path)))
        async with _client({}) as client:
            targets = await build_catalog(config, client=client)

        assert len(targets) == 1
        target = targets[0]
        assert target.id == "button--primary"
        assert target.display_name == "Example/Button--Primary"
        assert target.source == ShotSource.STORY_CATALOG
        assert target.url.startswith("file://")
        assert target.url.endswith("/iframe.html?id=button--primary&viewMode=story")

    @pytest.mark.asyncio
    async def test_remote_falls_back_to_stories_json(self):
        routes = {"http://sb.test/stories.json": {
            "v": 3,
            "stories": {
                "card--default": {"id": "card--default", "kind": "Card", "name": "Default",
                                  "parameters": {"pixeldrift": {"threshold": 0.3, "breakpoints": [480]}}},
                "card--animated": {"id": "card--animated", "kind": "Card", "name": "Animated",
                                   "parameters": {"pixeldrift": {"disable": True}}},
            },
        }}
        config = RunConfig(storybook_shots=StorybookShotsConfig(storybook_url="http://sb.test"))
        async with _client(routes) as client:
            targets = await build_catalog(config, client=client)

        assert [t.id for t in targets] == ["card--default"]
        assert targets[0].threshold == 0.3
        assert targets[0].target_key == "Card--Default__w480"
        assert targets[0].url == "http://sb.test/iframe.html?id=card--default&viewMode=story"

    @pytest.mark.asyncio
    async def test_story_parameter_masks(self):
        routes = {"http://sb.test/index.json": {"stories": {
            "clock--live": {"id": "clock--live", "kind": "Clock", "name": "Live",
                            "parameters": {"pixeldrift": {"mask": [{"selector": "time"}]}}},
        }}}
        config = RunConfig(storybook_shots=StorybookShotsConfig(storybook_url="http://sb.test"))
        async with _client(routes) as client:
            (target,) = await build_catalog(config, client=client)
        assert [m.selector for m in target.masks] == ["time"]

    @pytest.mark.asyncio
    async def test_unreachable_storybook_is_fatal(self):
        config = RunConfig(storybook_shots=StorybookShotsConfig(storybook_url="http://sb.test"))
        async with _client({}) as client:
            with pytest.raises(DiscoveryError, match="storybook"):
                await build_catalog(config, client=client)

    @pytest.mark.asyncio
    async def test_index_that_is_not_an_object_is_fatal(self):
        routes = {"http://sb.test/index.json": [{"id": "button--primary"}]}
        config = RunConfig(storybook_shots=StorybookShotsConfig(storybook_url="http://sb.test"))
        async with _client(routes) as client:
            with pytest.raises(DiscoveryError, match="must be an object"):
                await build_catalog(config, client=client)

    @pytest.mark.asyncio
    async def test_story_entry_that_is_not_an_object_is_fatal(self, tmp_path):
        (tmp_path / "index.json").write_text(json.dumps({"entries": {"button--primary": "story"}}))
        config = RunConfig(storybook_shots=StorybookShotsConfig(storybook_url=str(tmp_path)))
        async with _client({}) as client:
            with pytest.raises(DiscoveryError, match="story entry"):
                await build_catalog(config, client=client)

    @pytest.mark.asyncio
    async def test_story_options_that_are_not_an_object_are_fatal(self):
        routes = {"http://sb.test/index.json": {"stories": {
            "card--default": {"id": "card--default", "kind": "Card", "name": "Default",
                              "parameters": {"pixeldrift": ["disable"]}},
        }}}
        config = RunConfig(storybook_shots=StorybookShotsConfig(storybook_url="http://sb.test"))
        async with _client(routes) as client:
            with pytest.raises(DiscoveryError, match="card--default"):
                await build_catalog(config, client=client)

    @pytest.mark.asyncio
    async def test_missing_local_index_is_fatal(self, tmp_path):
        config = RunConfig(storybook_shots=StorybookShotsConfig(storybook_url=str(tmp_path)))
        async with _client({}) as client:
            with pytest.raises(DiscoveryError):
                await build_catalog(config, client=client)


class TestLadleSource:
    @pytest.mark.asyncio
    async def test_meta_json(self):
        routes = {"http://ladle.test/meta.json": {"stories": {
            "button--large": {"name": "Large", "levels": ["Forms", "Button"], "meta": {}},
        }}}
        config = RunConfig(ladle_shots=LadleShotsConfig(ladle_url="http://ladle.test"))
        async with _client(routes) as client:
            (target,) = await build_catalog(config, client=client)
        assert target.display_name == "Forms/Button--Large"
        assert target.url == "http://ladle.test/?story=button--large&mode=preview"

    @pytest.mark.asyncio
    async def test_malformed_meta_is_fatal(self):
        routes = {"http://ladle.test/meta.json": {"unexpected": True}}
        config = RunConfig(ladle_shots=LadleShotsConfig(ladle_url="http://ladle.test"))
        async with _client(routes) as client:
            with pytest.raises(DiscoveryError, match="ladle"):
                await build_catalog(config, client=client)

    @pytest.mark.asyncio
    async def test_story_that_is_not_an_object_is_fatal(self):
        routes = {"http://ladle.test/meta.json": {"stories": {"button--large": ["Large"]}}}
        config = RunConfig(ladle_shots=LadleShotsConfig(ladle_url="http://ladle.test"))
        async with _client(routes) as client:
            with pytest.raises(DiscoveryError, match="button--large"):
                await build_catalog(config, client=client)


class TestHistoireSource:
    STORIES = {"stories": [
        {
            "id": "src-button-story-vue",
            "title": "Controls/Button",
            "variants": [
                {"id": "src-button-story-vue-0", "title": "Primary"},
                {"id": "src-button-story-vue-1", "title": "Disabled"},
            ],
        },
        {
            "id": "src-clock-story-vue",
            "title": "Clock",
            "meta": {"pixeldrift": {"threshold": 0.2, "mask": [{"selector": "time"}]}},
            "variants": [{"id": "src-clock-story-vue-0", "title": "Default"}],
        },
        {
            "id": "src-spinner-story-vue",
            "title": "Spinner",
            "meta": {"pixeldrift": {"disable": True}},
            "variants": [{"id": "src-spinner-story-vue-0", "title": "Default"}],
        },
    ]}

    @pytest.mark.asyncio
    async def test_one_target_per_variant(self):
        config = RunConfig(histoire_shots=HistoireShotsConfig(histoire_url="http://histoire.test/"))
        async with _client({"http://histoire.test/histoire.json": self.STORIES}) as client:
            targets = await build_catalog(config, client=client)

        assert [t.id for t in targets] == [
            "src-button-story-vue_src-button-story-vue-0",
            "src-button-story-vue_src-button-story-vue-1",
            "src-clock-story-vue_src-clock-story-vue-0",
        ]
        assert [t.display_name for t in targets] == [
            "Controls/Button--Primary", "Controls/Button--Disabled", "Clock--Default",
        ]
        assert all(t.source == ShotSource.STORY_CATALOG for t in targets)
        assert targets[0].url == (
            "http://histoire.test/__sandbox.html"
            "?storyId=src-button-story-vue&variantId=src-button-story-vue-0"
        )

    @pytest.mark.asyncio
    async def test_story_meta_applies_to_variants(self):
        config = RunConfig(
            threshold=0.01,
            histoire_shots=HistoireShotsConfig(histoire_url="http://histoire.test", breakpoints=[375]),
        )
        async with _client({"http://histoire.test/histoire.json": self.STORIES}) as client:
            targets = await build_catalog(config, client=client)

        button, _, clock = targets
        assert button.threshold == 0.01
        assert button.breakpoint == 375
        assert clock.threshold == 0.2
        assert [m.selector for m in clock.masks] == ["time"]

    @pytest.mark.asyncio
    async def test_local_build_folder(self, tmp_path):
        (tmp_path / "histoire.json").write_text(json.dumps(self.STORIES))
        config = RunConfig(histoire_shots=HistoireShotsConfig(histoire_url=str(tmp_path)))
        async with _client({}) as client:
            targets = await build_catalog(config, client=client)

        assert len(targets) == 3
        assert targets[2].url.startswith("file://")
        assert targets[2].url.endswith(
            "/__sandbox.html?storyId=src-clock-story-vue&variantId=src-clock-story-vue-0")

    @pytest.mark.asyncio
    async def test_unreachable_histoire_is_fatal(self):
        config = RunConfig(histoire_shots=HistoireShotsConfig(histoire_url="http://histoire.test"))
        async with _client({}) as client:
            with pytest.raises(DiscoveryError, match="histoire"):
                await build_catalog(config, client=client)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        [],
        {"stories": {"src-button-story-vue": {}}},
        {"stories": ["src-button-story-vue"]},
        {"stories": [{"id": "src-button-story-vue", "variants": [{"title": "No id"}]}]},
    ])
    async def test_malformed_story_list_is_fatal(self, payload):
        config = RunConfig(histoire_shots=HistoireShotsConfig(histoire_url="http://histoire.test"))
        async with _client({"http://histoire.test/histoire.json": payload}) as client:
            with pytest.raises(DiscoveryError, match="histoire"):
                await build_catalog(config, client=client)


# ============================================================================
# Pre-rendered folder
# ============================================================================


class TestPrerenderedSource:
    @pytest.mark.asyncio
    async def test_folder_images_become_targets(self, custom_shots_config):
        targets = await build_catalog(custom_shots_config)
        assert [t.id for t in targets] == ["forms/login", "home"]
        assert [t.target_key for t in targets] == ["forms_login", "home"]
        assert all(t.source == ShotSource.PRERENDERED for t in targets)
        assert all(Path(t.file_path).exists() for t in targets)

    @pytest.mark.asyncio
    async def test_global_breakpoints_do_not_apply(self, custom_shots_config):
        config = custom_shots_config.model_copy(update={"breakpoints": [320, 768]})
        targets = await build_catalog(config)
        assert all(t.breakpoint is None for t in targets)

    @pytest.mark.asyncio
    async def test_missing_folder_is_fatal(self, tmp_path):
        config = RunConfig(custom_shots=CustomShotsConfig(current_shots_path=str(tmp_path / "nope")))
        with pytest.raises(DiscoveryError, match="custom_shots"):
            await build_catalog(config)
