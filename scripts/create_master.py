import getpass
import os
import sys

from dotenv import load_dotenv

from app.application.services.identity_service import IdentityPolicy, IdentityService
from app.core.config import Settings
from app.core.logging import configure_logging
from app.core.security import SessionTokenService
from app.domain.errors import IdentityError
from app.infrastructure.persistence.sqlite import SQLitePersistence
from app.services.rate_limiter import LoginRateLimiter


def main() -> int:
    load_dotenv()
    configure_logging()
    settings = Settings()

    email = os.getenv("MASTER_EMAIL") or input("Email do usuário master: ").strip()
    full_name = os.getenv("MASTER_NAME") or input("Nome completo: ").strip()
    password = getpass.getpass("Senha: ")
    if password != getpass.getpass("Confirme a senha: "):
        print("As senhas não coincidem.")
        return 1

    persistence = SQLitePersistence(settings.database_path)
    identity = IdentityService(
        persistence=persistence,
        rate_limiter=LoginRateLimiter(settings.login_max_attempts, settings.login_lockout),
        token_service=SessionTokenService(settings.session_token_secret, settings.session_token_exp_minutes),
        policy=IdentityPolicy(
            password_min_score=settings.password_min_score,
            institutional_domains=settings.institutional_domains,
            bcrypt_rounds=settings.bcrypt_rounds,
        ),
    )
    try:
        account = identity.provision_master(email, password, full_name)
    except IdentityError as exc:
        print(f"Não foi possível criar o usuário master: {exc.message}")
        return 1
    finally:
        persistence.close()

    print(f"Usuário master criado: {account.email} ({account.id})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
