"""
Error types shared by the services, the submission flow and the routes.

Every error carries a plain user-facing message; technical detail goes to the
log, never to the screen.
"""


class AliaError(Exception):
    default_message = "Erro desconhecido"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AnalysisServiceError(AliaError):
    default_message = "Erro ao processar análise do exame. Tente novamente."


class StorageError(AliaError):
    default_message = "Falha ao fazer upload da imagem do exame."


class PersistenceError(AliaError):
    default_message = "Falha ao salvar a análise no banco de dados."


class ProfileUnavailableError(AliaError):
    default_message = "Não foi possível carregar o perfil do usuário."


class CheckoutError(AliaError):
    default_message = "Erro ao iniciar o pagamento."


class WebhookProcessingError(AliaError):
    default_message = "Webhook Error"
