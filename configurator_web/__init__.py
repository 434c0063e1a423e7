"""Flask HTTP surface for the product configurator engine."""
