from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    chronogolf_email: str = ""
    chronogolf_password: str = ""
    chronogolf_base_url: str = "https://www.chronogolf.com"
    course_id: str = "17078"

    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""

    user_phone_number: str = ""

    scheduler_api_key: str = ""
    scheduler_service_account: str = ""

    data_file: str = "teesweep.json"

    timezone: str = "America/Vancouver"
    days_can_book: int = 8
    default_hour: int = 7
    default_minute: int = 10
    sweep_hour: int = 0
    sweep_minute: int = 0

    login_every_hours: int = 24
    http_timeout_seconds: float = 60.0

    host: str = "0.0.0.0"
    port: int = 8080

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
