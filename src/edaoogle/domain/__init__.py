"""Domain value objects shared by the query engine and the delivery layer."""
