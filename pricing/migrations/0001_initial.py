from decimal import Decimal

from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

	initial = True

	dependencies = [
		migrations.swappable_dependency(settings.AUTH_USER_MODEL),
	]

	operations = [
		migrations.CreateModel(
			name='CategoryMarkup',
			fields=[
				('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
				('category_name', models.CharField(max_length=80, unique=True, verbose_name='Categoria')),
				('default_markup', models.DecimalField(decimal_places=2, max_digits=8, verbose_name='Markup padrão')),
				('active', models.BooleanField(default=True, verbose_name='Ativa')),
				('description', models.CharField(blank=True, max_length=255, verbose_name='Descrição')),
				('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Criado em')),
				('updated_at', models.DateTimeField(auto_now=True, verbose_name='Atualizado em')),
			],
			options={
				'verbose_name': 'Markup por categoria',
				'verbose_name_plural': 'Markups por categoria',
				'ordering': ('category_name',),
			},
		),
		migrations.CreateModel(
			name='GlobalPricingConfig',
			fields=[
				('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
				('default_markup', models.DecimalField(decimal_places=2, default=Decimal('6.00'), help_text='Multiplicador usado quando o item não possui categoria (ex.: 6.00 = custo x 6).', max_digits=8, verbose_name='Markup padrão global')),
				('min_markup', models.DecimalField(decimal_places=2, default=Decimal('1.00'), max_digits=8, verbose_name='Markup mínimo')),
				('max_markup', models.DecimalField(decimal_places=2, default=Decimal('20.00'), max_digits=8, verbose_name='Markup máximo')),
				('allow_zero_markup', models.BooleanField(default=False, verbose_name='Permitir markup zero')),
				('auto_apply_on_import', models.BooleanField(default=True, help_text='Recalcula o preço de venda dos itens importados de notas fiscais.', verbose_name='Aplicar automaticamente na importação')),
				('updated_at', models.DateTimeField(auto_now=True, verbose_name='Atualizado em')),
				('updated_by', models.ForeignKey(blank=True, null=True, on_delete=models.deletion.SET_NULL, related_name='pricing_config_updates', to=settings.AUTH_USER_MODEL, verbose_name='Atualizado por')),
			],
			options={
				'verbose_name': 'Configuração de markup',
				'verbose_name_plural': 'Configuração de markup',
			},
		),
		migrations.CreateModel(
			name='PriceHistoryEntry',
			fields=[
				('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
				('entity_type', models.CharField(choices=[('produto', 'Produto'), ('insumo', 'Insumo'), ('embalagem', 'Embalagem')], max_length=20, verbose_name='Tipo')),
				('entity_id', models.CharField(max_length=64, verbose_name='Identificador')),
				('old_cost_price', models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True, verbose_name='Custo anterior')),
				('new_cost_price', models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True, verbose_name='Custo novo')),
				('old_markup', models.DecimalField(blank=True, decimal_places=2, max_digits=8, null=True, verbose_name='Markup anterior')),
				('new_markup', models.DecimalField(blank=True, decimal_places=2, max_digits=8, null=True, verbose_name='Markup novo')),
				('old_sale_price', models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True, verbose_name='Preço anterior')),
				('new_sale_price', models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True, verbose_name='Preço novo')),
				('reason', models.CharField(blank=True, max_length=255, verbose_name='Motivo')),
				('created_at', models.DateTimeField(auto_now_add=True, db_index=True, verbose_name='Registrado em')),
				('changed_by', models.ForeignKey(blank=True, null=True, on_delete=models.deletion.SET_NULL, related_name='price_history_entries', to=settings.AUTH_USER_MODEL, verbose_name='Alterado por')),
			],
			options={
				'verbose_name': 'Histórico de preço',
				'verbose_name_plural': 'Históricos de preço',
				'ordering': ('-created_at', '-pk'),
				'indexes': [models.Index(fields=['entity_type', 'entity_id', 'created_at'], name='pricing_history_entity_idx')],
			},
		),
	]
