from category_resolver import CategoryResolver


def test_second_call_in_batch_hits_cache(categories, platform, state_store):
    cache = {}
    first = categories.resolve(7, "Piensos", cache)
    second = categories.resolve(7, "Piensos", cache)
    assert first == second
    assert platform.create_category_calls == 1
    assert cache["7"] == first
    assert state_store.get_category(7) == first


def test_persistent_index_is_used_before_the_store(categories, platform, state_store):
    state_store.save_category("9", 555, "Juguetes")
    assert categories.resolve(9, "Juguetes", {}) == 555
    assert platform.create_category_calls == 0


def test_existing_term_with_same_name_is_reused(categories, platform, state_store):
    platform.categories["accesorios"] = 42
    assert categories.resolve(3, "Accesorios", {}) == 42
    assert platform.create_category_calls == 0
    assert state_store.get_category(3) == 42


def test_creation_failure_returns_none(categories, platform, state_store):
    platform.fail_category_create = True
    assert categories.resolve(11, "Nueva", {}) is None
    assert state_store.get_category(11) is None


def test_nothing_usable_returns_none(categories, platform):
    assert categories.resolve(None, "", {}) is None
    assert categories.resolve(5, "", {}) is None
    assert platform.create_category_calls == 0


def test_resolve_many_deduplicates_in_order(state_store, platform):
    resolver = CategoryResolver(state_store, platform)
    state_store.save_category("1", 10)
    state_store.save_category("2", 20)
    state_store.save_category("3", 10)
    assert resolver.resolve_many([(1, ""), (2, ""), (3, ""), (2, "")], {}) == [10, 20]
