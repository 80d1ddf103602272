"""
阶梯数量折扣测试
"""
from decimal import Decimal

from chargequote.schemas.quote import MarginSettings, VolumeDiscount
from chargequote.services.line_items import build_line_item
from chargequote.services.volume_discount import (
    apply_volume_discounts, best_volume_discount, category_quantities
)


def tiered_policy(*tiers) -> MarginSettings:
    return MarginSettings(volume_discounts=[
        VolumeDiscount(minimum_quantity=q, discount_percentage=Decimal(str(p)), applicable_categories=list(c))
        for q, p, c in tiers
    ])


class TestVolumeDiscount:
    """阶梯折扣测试"""

    def test_discount_applied(self, charger_item):
        """测试 2 x 1000 命中10%档位：单价900，总价2340"""
        policy = tiered_policy((2, 10, ["chargers"]))
        items = apply_volume_discounts([build_line_item(charger_item)], policy)

        assert items[0].unit_price == Decimal("900")
        assert items[0].total_price == Decimal("2340")
        assert items[0].markup == Decimal("30")

    def test_below_threshold_unchanged(self, charger_item):
        """测试未达阈值时不变"""
        policy = tiered_policy((5, 10, ["chargers"]))
        original = build_line_item(charger_item)
        items = apply_volume_discounts([original], policy)

        assert items[0] == original

    def test_other_category_unchanged(self, charger_item, installation_item):
        """测试不适用的类别不变"""
        policy = tiered_policy((1, 10, ["chargers"]))
        installation = build_line_item(installation_item)
        items = apply_volume_discounts([build_line_item(charger_item), installation], policy)

        assert items[1] == installation

    def test_quantities_summed_per_category(self, charger_item):
        """测试同类别数量合并计算阈值"""
        policy = tiered_policy((4, 5, ["chargers"]))
        first = build_line_item(charger_item)
        second = build_line_item(charger_item)

        assert category_quantities([first, second]) == {"chargers": 4}
        items = apply_volume_discounts([first, second], policy)
        assert all(item.unit_price == Decimal("950") for item in items)

    def test_highest_tier_wins(self):
        """测试取最高折扣档位"""
        tiers = tiered_policy((5, 5, ["chargers"]), (10, 10, ["chargers"]), (20, 15, ["chargers"])).volume_discounts

        assert best_volume_discount("chargers", 4, tiers) is None
        assert best_volume_discount("chargers", 12, tiers).discount_percentage == Decimal("10")
        assert best_volume_discount("chargers", 25, tiers).discount_percentage == Decimal("15")

    def test_tie_keeps_first_tier(self):
        """测试折扣相同时取靠前档位"""
        tiers = tiered_policy((3, 10, ["chargers"]), (1, 10, ["chargers"])).volume_discounts
        assert best_volume_discount("chargers", 5, tiers) is tiers[0]

    def test_monotonic_in_quantity(self, policy):
        """测试数量增加时折扣不减少"""
        previous = Decimal("0")
        for quantity in range(1, 30):
            tier = best_volume_discount("chargers", quantity, policy.volume_discounts)
            current = tier.discount_percentage if tier else Decimal("0")
            assert current >= previous
            previous = current

    def test_input_not_mutated(self, charger_item):
        """测试输入列表不被修改"""
        policy = tiered_policy((2, 10, ["chargers"]))
        original = build_line_item(charger_item)
        apply_volume_discounts([original], policy)

        assert original.unit_price == Decimal("1000")

    def test_reapply_uses_list_price(self, charger_item):
        """测试重复应用基于原单价计算，结果不变"""
        policy = tiered_policy((2, 10, ["chargers"]))
        once = apply_volume_discounts([build_line_item(charger_item)], policy)
        twice = apply_volume_discounts(once, policy)

        assert twice == once
        assert twice[0].list_unit_price == Decimal("1000")

    def test_price_restored_when_tier_no_longer_applies(self, charger_item):
        policy = tiered_policy((2, 10, ["chargers"]))
        discounted = apply_volume_discounts([build_line_item(charger_item)], policy)

        restored = apply_volume_discounts(discounted, tiered_policy((5, 10, ["chargers"])))

        assert restored[0].unit_price == Decimal("1000")
        assert restored[0].list_unit_price is None
        assert restored[0].total_price == Decimal("2600")
