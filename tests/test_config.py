from gradeshield.config import Config, DBConfig, OCRConfig, VideoConfig, get_config, reset_config


def test_defaults(tmp_path):
    config = Config(base_dir=tmp_path)

    assert config.code.ttl_sec == 120
    assert config.code.prefix == "AG-S3-"
    assert config.video.min_duration_sec == 3.0
    assert config.video.max_duration_sec == 90.0
    assert config.worker.job_timeout_sec == 180.0
    assert config.data_dir.is_dir()
    assert config.audit_log_path == tmp_path / "logs" / "verification_audit.jsonl"


def test_env_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("VIDEO_MAX_FRAMES", "5")
    monkeypatch.setenv("VIDEO_BLUR_THRESHOLD", "not-a-number")
    monkeypatch.setenv("STORAGE_BACKEND", " Postgres ")
    monkeypatch.setenv("DEBUG", "yes")

    config = Config(base_dir=tmp_path)

    assert config.video.max_frames == 5
    assert config.video.blur_threshold == 100.0
    assert config.storage_backend == "postgres"
    assert config.debug


def test_ocr_space_keys(monkeypatch):
    monkeypatch.delenv("OCR_SPACE_API_KEYS", raising=False)
    monkeypatch.setenv("OCR_SPACE_API_KEY", "single")
    monkeypatch.setenv("OCR_SPACE_API_KEY_1", "first")
    monkeypatch.setenv("OCR_SPACE_API_KEY_2", "second")
    assert OCRConfig().ocr_space_keys == ["single", "first", "second"]

    monkeypatch.setenv("OCR_SPACE_API_KEYS", "a, b,,c")
    assert OCRConfig().ocr_space_keys == ["a", "b", "c"]
    assert OCRConfig().cloud_enabled


def test_db_configured(monkeypatch):
    monkeypatch.delenv("DB_HOST", raising=False)
    assert not DBConfig().is_configured()
    assert DBConfig(host="localhost", name="grades", user="app").is_configured()


def test_global_config_is_cached(monkeypatch, tmp_path):
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    reset_config()
    try:
        first = get_config()
        assert get_config() is first
        reset_config()
        assert get_config() is not first
    finally:
        reset_config()


def test_video_config_explicit_values():
    config = VideoConfig(min_duration_sec=1.0, max_frames=2)
    assert (config.min_duration_sec, config.max_frames) == (1.0, 2)
