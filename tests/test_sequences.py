from buildsched.sequences import CONSTRUCTION_SEQUENCES, identify_trade, requires_inspection, typical_duration


def test_identify_trade_by_keyword():
    assert identify_trade("Hang sheetrock in kitchen") == "drywall"
    assert identify_trade("Pour footing") == "foundation"
    assert identify_trade("Landscaping") is None
    assert identify_trade(None) is None


def test_inspection_and_duration_lookups():
    assert requires_inspection("Wall framing")
    assert not requires_inspection("Exterior paint")
    assert typical_duration("Exterior paint") == 5
    assert typical_duration("Landscaping") is None


def test_sequence_table_references_known_trades():
    for config in CONSTRUCTION_SEQUENCES.values():
        for other in config.after:
            assert other in CONSTRUCTION_SEQUENCES
