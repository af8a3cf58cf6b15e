"""Key graph, structural editing, integrity checks, navigation and the DataModel facade."""
