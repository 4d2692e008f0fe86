"""Initial marketplace schema.

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1b2c3d4e5f6'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(updated: bool = True):
    columns = [sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)]
    if updated:
        columns.append(sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False))
    return columns


def upgrade() -> None:
    # Accounts
    op.create_table(
        'users',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('correo', sa.String(), nullable=False),
        sa.Column('nombre', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('hashed_password', sa.String(), nullable=True),
        sa.Column('tipo', sa.String(), nullable=False, server_default='usuario'),
        sa.Column('perfil', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('nickname', sa.String(), nullable=True),
        sa.Column('foto_perfil', sa.String(), nullable=False, server_default=''),
        sa.Column('direccion', sa.String(), nullable=False, server_default=''),
        sa.Column('telefono', sa.String(), nullable=False, server_default=''),
        sa.Column('telefono_verificado', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('telefono_verificado_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('email_verificado', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('email_verif_token_hash', sa.String(), nullable=True),
        sa.Column('email_verif_expires', sa.DateTime(timezone=True), nullable=True),
        sa.Column('autenticado_por_google', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('failed_login_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lock_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('logout_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_correo', 'users', ['correo'], unique=True)
    op.create_index('ix_users_nickname', 'users', ['nickname'], unique=True)
    op.create_index('ix_users_email_verif_token_hash', 'users', ['email_verif_token_hash'])

    op.create_table(
        'deleted_accounts',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('original_id', sa.String(), nullable=False),
        sa.Column('correo', sa.String(), nullable=False),
        sa.Column('datos', sa.JSON(), nullable=False),
        sa.Column('recovery_code_hash', sa.String(), nullable=True),
        sa.Column('recovery_code_expires', sa.DateTime(timezone=True), nullable=True),
        sa.Column('recovery_code_tries', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('deleted_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_deleted_accounts_original_id', 'deleted_accounts', ['original_id'])
    op.create_index('ix_deleted_accounts_correo', 'deleted_accounts', ['correo'])

    op.create_table(
        'phone_otps',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('telefono', sa.String(), nullable=False),
        sa.Column('channel', sa.String(), nullable=False),
        sa.Column('code_hash', sa.String(), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sent_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_phone_otps_user_id', 'phone_otps', ['user_id'])
    op.create_index('ix_phone_otps_telefono', 'phone_otps', ['telefono'])
    op.create_index('ix_phone_otps_expires_at', 'phone_otps', ['expires_at'])

    op.create_table(
        'refresh_tokens',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('jti', sa.String(), nullable=False),
        sa.Column('family', sa.String(), nullable=False),
        sa.Column('token_hash', sa.String(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoke_reason', sa.String(), nullable=True),
        sa.Column('ua', sa.String(), nullable=False, server_default=''),
        sa.Column('ip', sa.String(), nullable=False, server_default=''),
        sa.Column('last_used_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_refresh_tokens_user_id', 'refresh_tokens', ['user_id'])
    op.create_index('ix_refresh_tokens_jti', 'refresh_tokens', ['jti'], unique=True)
    op.create_index('ix_refresh_tokens_family', 'refresh_tokens', ['family'])
    op.create_index('ix_refresh_tokens_user_family', 'refresh_tokens', ['user_id', 'family'])

    # Marketplace content
    op.create_table(
        'businesses',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('nombre', sa.String(length=120), nullable=False),
        sa.Column('categoria', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('subcategoria', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('categoria_slug', sa.String(), nullable=False),
        sa.Column('subcategoria_slug', sa.String(), nullable=False, server_default=''),
        sa.Column('ciudad', sa.String(length=120), nullable=False),
        sa.Column('whatsapp', sa.String(length=20), nullable=False, server_default=''),
        sa.Column('telefono', sa.String(length=20), nullable=False, server_default=''),
        sa.Column('direccion', sa.String(length=200), nullable=False, server_default=''),
        sa.Column('descripcion', sa.Text(), nullable=False, server_default=''),
        sa.Column('activo', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('logo_url', sa.String(), nullable=False, server_default=''),
        sa.Column('badges', sa.JSON(), nullable=False),
        sa.Column('rating', sa.Float(), nullable=False, server_default='0'),
        sa.Column('reviews', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('price_level', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('closing_time', sa.String(), nullable=False, server_default=''),
        sa.Column('promo_text', sa.String(), nullable=False, server_default=''),
        sa.Column('promo_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('lat', sa.Float(), nullable=True),
        sa.Column('lng', sa.Float(), nullable=True),
        sa.Column('fotos', sa.JSON(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_businesses_user_id', 'businesses', ['user_id'])
    op.create_index('ix_businesses_categoria_slug', 'businesses', ['categoria_slug'])
    op.create_index('ix_businesses_subcategoria_slug', 'businesses', ['subcategoria_slug'])

    op.create_table(
        'promotions',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('creador_id', sa.String(), nullable=False),
        sa.Column('titulo', sa.String(), nullable=False),
        sa.Column('descripcion', sa.Text(), nullable=False),
        sa.Column('imagen', sa.String(), nullable=False, server_default=''),
        sa.Column('precio', sa.Float(), nullable=False, server_default='0'),
        sa.Column('categoria', sa.String(), nullable=False, server_default='general'),
        sa.Column('estado', sa.String(), nullable=False, server_default='activa'),
        sa.Column('fecha_expiracion', sa.DateTime(timezone=True), nullable=True),
        sa.Column('lng', sa.Float(), nullable=False),
        sa.Column('lat', sa.Float(), nullable=False),
        sa.Column('ciudad', sa.String(), nullable=False, server_default=''),
        sa.Column('estado_region', sa.String(), nullable=False, server_default=''),
        sa.Column('reacciones', sa.JSON(), nullable=False),
        sa.Column('guardados', sa.JSON(), nullable=False),
        sa.Column('visualizaciones', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['creador_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_promotions_creador_id', 'promotions', ['creador_id'])

    op.create_table(
        'raffles',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('organizador_id', sa.String(), nullable=False),
        sa.Column('titulo', sa.String(), nullable=False),
        sa.Column('descripcion', sa.Text(), nullable=False),
        sa.Column('imagen', sa.String(), nullable=False, server_default=''),
        sa.Column('precio_boleto', sa.Float(), nullable=False),
        sa.Column('cantidad_boletos', sa.Integer(), nullable=False),
        sa.Column('boletos_disponibles', sa.JSON(), nullable=False),
        sa.Column('boletos_vendidos', sa.JSON(), nullable=False),
        sa.Column('tipo', sa.String(), nullable=False, server_default='aleatoria'),
        sa.Column('fecha_sorteo', sa.DateTime(timezone=True), nullable=False),
        sa.Column('reglas', sa.Text(), nullable=False, server_default=''),
        sa.Column('estado', sa.String(), nullable=False, server_default='activa'),
        sa.Column('ganador_id', sa.String(), nullable=True),
        sa.Column('lng', sa.Float(), nullable=False),
        sa.Column('lat', sa.Float(), nullable=False),
        sa.Column('ciudad', sa.String(), nullable=False, server_default=''),
        sa.Column('estado_region', sa.String(), nullable=False, server_default=''),
        sa.Column('participantes', sa.JSON(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['organizador_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_raffles_organizador_id', 'raffles', ['organizador_id'])

    op.create_table(
        'auctions',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('usuario_id', sa.String(), nullable=True),
        sa.Column('titulo', sa.String(), nullable=False, server_default=''),
        sa.Column('descripcion', sa.Text(), nullable=False, server_default=''),
        sa.Column('precio_inicial', sa.Float(), nullable=False, server_default='0'),
        sa.Column('fecha_limite', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ciudad', sa.String(), nullable=False, server_default=''),
        sa.Column('estado_region', sa.String(), nullable=False, server_default=''),
        sa.Column('lat', sa.Float(), nullable=True),
        sa.Column('lng', sa.Float(), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['usuario_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_auctions_usuario_id', 'auctions', ['usuario_id'])

    op.create_table(
        'coupons',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('negocio_id', sa.String(), nullable=False),
        sa.Column('titulo', sa.String(), nullable=False),
        sa.Column('etiqueta', sa.String(), nullable=False, server_default=''),
        sa.Column('tipo', sa.String(), nullable=False, server_default='percent'),
        sa.Column('valor', sa.Float(), nullable=False),
        sa.Column('color_hex', sa.String(), nullable=False, server_default='#2563eb'),
        sa.Column('vence_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('activa', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('estado', sa.String(), nullable=False, server_default='publicado'),
        sa.Column('stock_total', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock_usado', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('limit_por_usuario', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('image_url', sa.String(), nullable=False, server_default=''),
        sa.Column('logo_url', sa.String(), nullable=False, server_default=''),
        sa.Column('image_public_id', sa.String(), nullable=False, server_default=''),
        sa.Column('logo_public_id', sa.String(), nullable=False, server_default=''),
        sa.Column('creado_por', sa.String(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['negocio_id'], ['businesses.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['creado_por'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_coupons_negocio_id', 'coupons', ['negocio_id'])
    op.create_index('ix_coupons_vence_at', 'coupons', ['vence_at'])
    op.create_index('ix_coupons_creado_por', 'coupons', ['creado_por'])
    op.create_index('ix_coupons_active_expiry', 'coupons', ['activa', 'vence_at'])

    op.create_table(
        'coupon_redemptions',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('cupon_id', sa.String(), nullable=False),
        sa.Column('usuario_id', sa.String(), nullable=False),
        sa.Column('estado', sa.String(), nullable=False, server_default='asignado'),
        sa.Column('codigo', sa.String(), nullable=False),
        sa.Column('canjeado_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('usado_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['cupon_id'], ['coupons.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['usuario_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_coupon_redemptions_cupon_id', 'coupon_redemptions', ['cupon_id'])
    op.create_index('ix_coupon_redemptions_usuario_id', 'coupon_redemptions', ['usuario_id'])
    op.create_index('ix_coupon_redemptions_codigo', 'coupon_redemptions', ['codigo'], unique=True)
    op.create_index('ix_coupon_redemptions_user_state', 'coupon_redemptions', ['usuario_id', 'estado'])

    # Messaging
    op.create_table(
        'chats',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('tipo', sa.String(), nullable=False, server_default='privado'),
        sa.Column('participantes', sa.JSON(), nullable=False),
        sa.Column('usuario_a', sa.String(), nullable=True),
        sa.Column('usuario_b', sa.String(), nullable=True),
        sa.Column('anuncio_id', sa.String(), nullable=True),
        sa.Column('favorites_by', sa.JSON(), nullable=False),
        sa.Column('deleted_for', sa.JSON(), nullable=False),
        sa.Column('pins_by_user', sa.JSON(), nullable=False),
        sa.Column('blocked_by', sa.JSON(), nullable=False),
        sa.Column('background_url', sa.String(), nullable=False, server_default=''),
        sa.Column('ultimo_mensaje', sa.String(), nullable=False, server_default=''),
        sa.Column('ultimo_mensaje_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_chats_usuario_a', 'chats', ['usuario_a'])
    op.create_index('ix_chats_usuario_b', 'chats', ['usuario_b'])

    op.create_table(
        'messages',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('chat_id', sa.String(), nullable=False),
        sa.Column('emisor_id', sa.String(), nullable=False),
        sa.Column('texto', sa.Text(), nullable=False, server_default=''),
        sa.Column('archivos', sa.JSON(), nullable=False),
        sa.Column('reply_to', sa.JSON(), nullable=True),
        sa.Column('forward_of', sa.String(), nullable=True),
        sa.Column('leido_por', sa.JSON(), nullable=False),
        sa.Column('edited_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['chat_id'], ['chats.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_messages_chat_id', 'messages', ['chat_id'])
    op.create_index('ix_messages_emisor_id', 'messages', ['emisor_id'])
    op.create_index('ix_messages_created_at', 'messages', ['created_at'])


def downgrade() -> None:
    op.drop_table('messages')
    op.drop_table('chats')
    op.drop_table('coupon_redemptions')
    op.drop_table('coupons')
    op.drop_table('auctions')
    op.drop_table('raffles')
    op.drop_table('promotions')
    op.drop_table('businesses')
    op.drop_table('refresh_tokens')
    op.drop_table('phone_otps')
    op.drop_table('deleted_accounts')
    op.drop_table('users')
