"""Flask application configuration."""
import os


def _env_int(name, default):
    try:
        return int(os.environ.get(name, default))
    except ValueError:
        return default


def _env_float(name, default):
    try:
        return float(os.environ.get(name, default))
    except ValueError:
        return default


class Config:
    """Base configuration.

    Gemini settings (GEMINI_API_KEY, GEMINI_MODEL, ...) are read by the client
    itself; leaving GEMINI_API_KEY unset runs the widget in fallback mode.
    """

    # Flask
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')

    # CORS (the widget is embedded in a hosting page)
    CORS_ALLOWED_ORIGINS = os.environ.get('CORS_ALLOWED_ORIGINS', '*')

    # Vocabulary
    VOCABULARY_WORD_COUNT = _env_int('VOCABULARY_WORD_COUNT', 5)
    VOCABULARY_MAX_WORD_COUNT = 20

    # Grading without Gemini
    GRADER_FALLBACK_MATCH_SCORE = 100
    GRADER_FALLBACK_MISS_SCORE = _env_int('GRADER_FALLBACK_MISS_SCORE', 40)

    # Local speech synthesis, slowed down for young listeners
    LOCAL_SPEECH_RATE = _env_float('LOCAL_SPEECH_RATE', 0.8)
    LOCAL_SPEECH_PITCH = 1.0
    LOCAL_SPEECH_VOLUME = 1.0


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TESTING = False


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False


class TestingConfig(Config):
    """Test configuration."""
    DEBUG = False
    TESTING = True


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
