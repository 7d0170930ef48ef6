from axon.domain.classification.entity_extractor import EntityExtractor


def by_type(entities, entity_type):
    return {e.value: e.confidence for e in entities if e.type == entity_type}


def test_extracts_paths_and_file_names():
    entities = EntityExtractor().extract("Why does src/auth/session.py reject tokens?")

    files = by_type(entities, "file")
    assert files["src/auth/session.py"] == 0.8
    assert "session.py" in files


def test_extracts_symbols():
    entities = EntityExtractor().extract("class TokenStore calls refresh_token() and def rotate")

    assert by_type(entities, "class") == {"TokenStore": 0.7}
    assert by_type(entities, "function") == {"refresh_token": 0.7, "rotate": 0.7}


def test_errors_and_inline_code_rank_first():
    entities = EntityExtractor().extract("Getting KeyError: 'user_id' when calling `load_user`")

    assert entities[0].type == "code"
    assert entities[0].value == "load_user"
    assert entities[0].confidence == 0.95
    assert by_type(entities, "error") == {"'user_id' when calling `load_user`": 0.9}


def test_technologies_keep_prompt_spelling():
    entities = EntityExtractor().extract("Cache sessions in Redis behind FastAPI")

    assert by_type(entities, "technology") == {"Redis": 0.85, "FastAPI": 0.85}


def test_duplicates_collapse_case_insensitively():
    entities = EntityExtractor().extract("redis or Redis or REDIS")

    assert len(by_type(entities, "technology")) == 1


def test_max_entities_and_empty_prompt():
    extractor = EntityExtractor(max_entities=2)

    assert len(extractor.extract("`a` `b` `c` `d`")) == 2
    assert extractor.extract("") == []
