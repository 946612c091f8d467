import asyncio

from reahl.tofu import Fixture
from reahl.tofu import expected
from reahl.tofu import with_fixtures

from reahl.nowbridge.platform import InstanceNotFound
from reahl.nowbridge.platform import InstanceRouter
from reahl.nowbridge.platform import NestedInstanceBinding

from fake_platform import two_instance_catalog


class RouterFixture(Fixture):
    def new_router(self):
        return InstanceRouter(two_instance_catalog())


@with_fixtures(RouterFixture)
def test_resolve_prefers_explicit_then_active_then_default(fixture):
    assert fixture.router.resolve().name == 'dev'
    assert fixture.router.resolve('prod').name == 'prod'

    fixture.router.activate('prod')

    assert fixture.router.resolve().name == 'prod'
    assert fixture.router.resolve('dev').name == 'dev'
    assert fixture.router.current_binding().base_url == (
        'https://prod.example.service-now.com'
    )


@with_fixtures(RouterFixture)
def test_activating_an_unknown_instance_keeps_the_active_one(fixture):
    with expected(InstanceNotFound):
        fixture.router.activate('staging')

    assert fixture.router.resolve().name == 'dev'


@with_fixtures(RouterFixture)
def test_binding_is_scoped_to_the_call(fixture):
    async def read_binding(binding):
        assert fixture.router.is_bound()
        assert fixture.router.current_binding() is binding
        return binding.user_name

    user_name = asyncio.run(fixture.router.with_instance('prod', read_binding))

    assert user_name == 'integration'
    assert not fixture.router.is_bound()
    assert fixture.router.current_binding().instance.name == 'dev'


@with_fixtures(RouterFixture)
def test_concurrent_calls_see_only_their_own_instance(fixture):
    seen_base_urls = {}

    async def record_binding(binding):
        await asyncio.sleep(0)
        seen_base_urls.setdefault(binding.instance.name, []).append(
            fixture.router.current_binding().base_url
        )
        await asyncio.sleep(0)
        seen_base_urls[binding.instance.name].append(
            fixture.router.current_binding().base_url
        )

    async def run_concurrently():
        await asyncio.gather(
            fixture.router.with_instance('dev', record_binding),
            fixture.router.with_instance('prod', record_binding),
            fixture.router.with_instance('dev', record_binding),
        )

    asyncio.run(run_concurrently())

    assert set(seen_base_urls['dev']) == {'https://dev.example.service-now.com'}
    assert set(seen_base_urls['prod']) == {'https://prod.example.service-now.com'}
    assert len(seen_base_urls['dev']) == 4


@with_fixtures(RouterFixture)
def test_nested_binding_is_refused(fixture):
    async def bind_again(binding):
        return await fixture.router.with_instance('prod', bind_again)

    with expected(NestedInstanceBinding):
        asyncio.run(fixture.router.with_instance('dev', bind_again))
    assert not fixture.router.is_bound()


@with_fixtures(RouterFixture)
def test_unknown_instance_fails_before_binding(fixture):
    calls = []

    async def record_call(binding):
        calls.append(binding)

    with expected(InstanceNotFound):
        asyncio.run(fixture.router.with_instance('nonexistent', record_call))
    assert calls == []


@with_fixtures(RouterFixture)
def test_binding_is_released_when_the_call_fails(fixture):
    async def fail(binding):
        raise RuntimeError('remote call failed')

    with expected(RuntimeError):
        asyncio.run(fixture.router.with_instance('prod', fail))

    assert not fixture.router.is_bound()
    assert fixture.router.resolve().name == 'dev'
