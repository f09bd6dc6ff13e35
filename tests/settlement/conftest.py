import pytest
from protean import current_domain
from protean.integrations.pytest import DomainFixture

from settlement.config import AffiliatePolicy, DispatchPolicy, FeeSchedule, PlanPriceMap, Policies
from settlement.member.member import Member
from settlement.notification.channel import get_channel, reset_channels
from settlement.order.numbering import reset_number_generator
from settlement.processor import reset_processor, set_processor
from settlement.processor.fake_adapter import FakeProcessor
from settlement.shipping.carrier import reset_carrier, set_carrier
from settlement.shipping.carrier.fake_adapter import FakeCarrier
from settlement.stock.product import Product


@pytest.fixture(scope="session")
def settlement_bed():
    from settlement.domain import settlement

    bed = DomainFixture(settlement)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(settlement_bed):
    with settlement_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def _reset_adapters():
    """Every test starts with fresh fake adapters."""
    reset_processor()
    reset_carrier()
    reset_channels()
    reset_number_generator()
    yield
    reset_processor()
    reset_carrier()
    reset_channels()
    reset_number_generator()


@pytest.fixture()
def processor():
    fake = FakeProcessor()
    set_processor(fake)
    return fake


@pytest.fixture()
def carrier():
    fake = FakeCarrier()
    set_carrier(fake)
    return fake


@pytest.fixture()
def push():
    return get_channel("push")


@pytest.fixture()
def email():
    return get_channel("email")


@pytest.fixture()
def sms():
    return get_channel("sms")


@pytest.fixture()
def fees():
    return FeeSchedule()


@pytest.fixture()
def policies():
    return Policies(
        fees=FeeSchedule(),
        affiliate=AffiliatePolicy(),
        dispatch=DispatchPolicy(),
        plan_prices=PlanPriceMap(prices={"PRO": "price_pro", "BASIC": "price_basic"}),
    )


@pytest.fixture()
def make_member():
    """Persist a Member with complete Dutch postal data."""

    def _make(member_id, **overrides):
        fields = dict(
            name=f"Member {member_id}",
            email=f"{member_id}@example.com",
            address="Kerkstraat 1",
            postal_code="1011AA",
            city="Amsterdam",
            country="NL",
        )
        fields.update(overrides)
        member = Member(id=member_id, **fields)
        current_domain.repository_for(Member).add(member)
        return member

    return _make


@pytest.fixture()
def make_product():
    def _make(product_id, seller_id, stock=10, **overrides):
        product = Product(id=product_id, seller_id=seller_id, stock=stock, title=f"Product {product_id}", **overrides)
        current_domain.repository_for(Product).add(product)
        return product

    return _make
