"""Receipt line normalization, pack-size inference and spending statistics."""
