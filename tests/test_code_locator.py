from gradeshield.processors.code_locator import best_code_match, find_verification_code

CODE = "AG-S3-48213"


def test_exact_match():
    match = find_verification_code("Relevé de notes\nCode: ag-s3-48213", CODE)

    assert match.found
    assert match.exact
    assert match.confidence == 100


def test_dashes_dropped_by_ocr():
    match = find_verification_code("Code AGS348213", CODE)

    assert match.found
    assert not match.exact
    assert match.confidence == 90


def test_all_segments_split_over_lines():
    match = find_verification_code("AG\nS3\n48213", CODE)
    assert match.confidence == 75


def test_some_segments():
    match = find_verification_code("code S3 48213", CODE)
    assert match.confidence == 50


def test_not_found():
    assert not find_verification_code("Relevé de notes", CODE).found
    assert not find_verification_code("", CODE).found
    assert not find_verification_code("AG-S3-48213", "").found


def test_best_match_over_texts():
    match = best_code_match(["nothing", "code S3 48213", "AGS348213"], CODE)
    assert match.confidence == 90

    assert best_code_match([], CODE).confidence == 0
