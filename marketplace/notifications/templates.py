"""Bodies of the account emails, in HTML and plain text."""
from html import escape

from marketplace.notifications.email_provider import EmailMessage

BRAND = "AnunciaYA"
ACCENT = "#F97316"

_LAYOUT = """<!DOCTYPE html>
<html lang="es">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{title}</title>
<style>
  body {{ margin: 0; background: #FFF7ED; font-family: Helvetica, Arial, sans-serif; color: #111827; }}
  .wrap {{ max-width: 560px; margin: 0 auto; padding: 24px 16px; }}
  .brand {{ font-size: 22px; font-weight: 700; color: {accent}; padding-bottom: 12px; }}
  .panel {{ background: #FFFFFF; border: 1px solid #FED7AA; border-radius: 10px; padding: 28px; }}
  .cta {{ display: inline-block; background: {accent}; color: #FFFFFF; padding: 12px 22px;
          border-radius: 999px; text-decoration: none; font-weight: 600; }}
  .code {{ font-size: 30px; letter-spacing: 10px; font-weight: 700; text-align: center; margin: 18px 0; }}
  .muted {{ color: #6B7280; font-size: 13px; }}
</style>
</head>
<body>
<div class="wrap">
  <div class="brand">{brand}</div>
  <div class="panel">
{body}
  </div>
  <p class="muted">Recibiste este correo porque tienes una cuenta en {brand}.</p>
</div>
</body>
</html>
"""


def render_layout(title: str, body: str) -> str:
    return _LAYOUT.format(title=escape(title), body=body, brand=BRAND, accent=ACCENT)


def build_verification_email(to: str, nombre: str, link: str, ttl_hours: int) -> EmailMessage:
    subject = "Verifica tu correo"
    greeting = f"Hola {nombre}," if nombre else "Hola,"
    body = (
        f"    <h2>{escape(greeting)}</h2>\n"
        f"    <p>Confirma tu correo para activar tu cuenta.</p>\n"
        f'    <p><a class="cta" href="{escape(link, quote=True)}">Verificar correo</a></p>\n'
        f'    <p class="muted">El enlace vence en {ttl_hours} horas.</p>'
    )
    text = (
        f"{greeting}\n\n"
        f"Confirma tu correo para activar tu cuenta:\n{link}\n\n"
        f"El enlace vence en {ttl_hours} horas.\n"
    )
    return EmailMessage(
        to=to,
        subject=subject,
        html_body=render_layout(subject, body),
        plain_text_body=text,
        tag="verification",
    )


def build_recovery_email(to: str, code: str, ttl_minutes: int) -> EmailMessage:
    subject = "Código para recuperar tu cuenta"
    body = (
        f"    <h2>Recupera tu cuenta</h2>\n"
        f"    <p>Usa este código para restaurar tu cuenta:</p>\n"
        f'    <div class="code">{escape(code)}</div>\n'
        f'    <p class="muted">Vence en {ttl_minutes} minutos. Si no lo pediste, ignora este correo.</p>'
    )
    text = f"Tu código de recuperación es: {code}\n\nVence en {ttl_minutes} minutos.\n"
    return EmailMessage(
        to=to,
        subject=subject,
        html_body=render_layout(subject, body),
        plain_text_body=text,
        tag="recovery",
    )
