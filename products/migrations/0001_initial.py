from decimal import Decimal

from django.db import migrations, models


def _priced_fields():
	return [
		('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
		('name', models.CharField(max_length=200, verbose_name='Nome')),
		('code', models.CharField(blank=True, db_index=True, max_length=50, verbose_name='Código')),
		('cost_price', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=14, verbose_name='Preço de custo')),
		('markup', models.DecimalField(blank=True, decimal_places=2, max_digits=8, null=True, verbose_name='Markup')),
		('markup_is_custom', models.BooleanField(default=False, help_text='Marcado quando o markup foi definido manualmente e não deve seguir a categoria.', verbose_name='Markup personalizado')),
		('sale_price', models.DecimalField(blank=True, decimal_places=2, editable=False, max_digits=14, null=True, verbose_name='Preço de venda')),
		('category_name', models.CharField(blank=True, max_length=80, verbose_name='Categoria de markup')),
		('price_updated_at', models.DateTimeField(blank=True, editable=False, null=True, verbose_name='Preço atualizado em')),
		('created_at', models.DateTimeField(auto_now_add=True)),
		('updated_at', models.DateTimeField(auto_now=True)),
	]


KIND_CHOICES = [
	('MATERIA_PRIMA', 'Matéria-prima'),
	('PRINCIPIO_ATIVO', 'Princípio ativo'),
	('HOMEOPATICO', 'Homeopático'),
	('EMBALAGEM', 'Embalagem'),
	('REVENDA', 'Revenda'),
]


class Migration(migrations.Migration):

	initial = True

	dependencies = []

	operations = [
		migrations.CreateModel(
			name='Packaging',
			fields=_priced_fields() + [
				('capacity', models.CharField(blank=True, max_length=40, verbose_name='Capacidade')),
			],
			options={
				'verbose_name': 'Embalagem',
				'verbose_name_plural': 'Embalagens',
				'ordering': ('name',),
				'abstract': False,
			},
		),
		migrations.CreateModel(
			name='Product',
			fields=_priced_fields() + [
				('product_type', models.CharField(choices=KIND_CHOICES, default='REVENDA', max_length=20, verbose_name='Tipo')),
				('gtin', models.CharField(blank=True, max_length=14, verbose_name='GTIN/EAN')),
				('unit', models.CharField(default='UN', max_length=10, verbose_name='Unidade')),
			],
			options={
				'verbose_name': 'Produto',
				'verbose_name_plural': 'Produtos',
				'ordering': ('name',),
				'abstract': False,
			},
		),
		migrations.CreateModel(
			name='Supply',
			fields=_priced_fields() + [
				('supply_type', models.CharField(choices=KIND_CHOICES, default='MATERIA_PRIMA', max_length=20, verbose_name='Tipo')),
				('unit', models.CharField(default='G', max_length=10, verbose_name='Unidade')),
			],
			options={
				'verbose_name': 'Insumo',
				'verbose_name_plural': 'Insumos',
				'ordering': ('name',),
				'abstract': False,
			},
		),
	]
