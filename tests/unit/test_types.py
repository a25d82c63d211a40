"""
Tests for paths and opportunities.
"""

from amm_arbitrage.constants import OpportunitySource
from amm_arbitrage.types import ArbitragePath, Opportunity, opportunity_from_path, pool_key

E18 = 10**18


def make_path(triangle_pools):
    ab, bc, ca = triangle_pools
    return ArbitragePath(
        tokens=["A", "B", "C", "A"],
        pools=[ab, bc, ca],
        volume=10 * E18,
        expected_profit=E18 // 2,
        price_impact_bps=12,
        amounts=[10 * E18, 11 * E18, 11 * E18, 10 * E18 + E18 // 2],
    )


def test_pool_key_is_order_independent(triangle_pools):
    ab, bc, ca = triangle_pools
    assert pool_key([ca, ab, bc]) == pool_key([ab, bc, ca]) == ("0xab", "0xbc", "0xca")


def test_path_properties(triangle_pools):
    path = make_path(triangle_pools)
    assert path.hop_count == 3
    assert path.start_token == "A"
    assert path.describe() == "A -> B -> C -> A"


def test_opportunity_from_path_subtracts_gas(triangle_pools):
    path = make_path(triangle_pools)

    opp = opportunity_from_path(
        path,
        OpportunitySource.DETERMINISTIC,
        gas_estimate=400_000,
        gas_cost=E18 // 10,
        metadata={"cycle": 1},
    )

    assert opp.net_profit == E18 // 2 - E18 // 10
    assert opp.token == "A"
    assert opp.buy_pool.address == "0xab"
    assert opp.sell_pool.address == "0xca"
    assert opp.metadata == {"cycle": 1}
    # Copies, not aliases
    assert opp.pools is not path.pools
    assert opp.amounts is not path.amounts


def test_opportunity_id_stable_across_orderings(triangle_pools):
    ab, bc, ca = triangle_pools
    first = Opportunity(OpportunitySource.GENETIC, "A", ["A", "B", "C", "A"], [ab, bc, ca], E18, 1)
    second = Opportunity(OpportunitySource.GENETIC, "B", ["B", "C", "A", "B"], [bc, ca, ab], E18, 1)

    assert first.opportunity_id == second.opportunity_id
    assert len(first.opportunity_id) == 16


def test_display_row(triangle_pools):
    opp = opportunity_from_path(make_path(triangle_pools), OpportunitySource.STATISTICAL)

    row = opp.as_row()
    assert row["ID"] == opp.opportunity_id
    assert row["Source"] == "statistical"
    assert row["Route"] == "A -> B -> C -> A"
    assert row["Net"] == "0.500000"
