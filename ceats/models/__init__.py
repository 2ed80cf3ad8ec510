from ceats.models.restaurante import Restaurante
from ceats.models.sucursal import Sucursal
from ceats.models.usuario import Usuario
from ceats.models.pedido import Pedido
from ceats.models.whatsapp_integration import WhatsAppIntegration
from ceats.models.whatsapp_message import WhatsAppMessage
from ceats.models.embedded_signup_state import EmbeddedSignupState
