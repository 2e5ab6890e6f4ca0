import core.models
import core.validators
import django.contrib.auth.models
import django.contrib.auth.validators
import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('auth', '0012_alter_user_first_name_max_length'),
    ]

    operations = [
        migrations.CreateModel(
            name='User',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('is_superuser', models.BooleanField(default=False, help_text='Designates that this user has all permissions without explicitly assigning them.', verbose_name='superuser status')),
                ('username', models.CharField(error_messages={'unique': 'A user with that username already exists.'}, help_text='Required. 150 characters or fewer. Letters, digits and @/./+/-/_ only.', max_length=150, unique=True, validators=[django.contrib.auth.validators.UnicodeUsernameValidator()], verbose_name='username')),
                ('first_name', models.CharField(blank=True, max_length=150, verbose_name='first name')),
                ('last_name', models.CharField(blank=True, max_length=150, verbose_name='last name')),
                ('is_staff', models.BooleanField(default=False, help_text='Designates whether the user can log into this admin site.', verbose_name='staff status')),
                ('is_active', models.BooleanField(default=True, help_text='Designates whether this user should be treated as active. Unselect this instead of deleting accounts.', verbose_name='active')),
                ('date_joined', models.DateTimeField(default=django.utils.timezone.now, verbose_name='date joined')),
                ('email', models.EmailField(error_messages={'unique': 'A user with that email already exists.'}, help_text='Required. Enter a valid email address.', max_length=254, unique=True, verbose_name='email address')),
                ('phone_number', models.CharField(blank=True, default='', help_text='Optional. Enter phone number in international format.', max_length=20, validators=[core.validators.validate_phone_number], verbose_name='phone number')),
                ('university_name', models.CharField(blank=True, default='', help_text='Educational institution name.', max_length=200, verbose_name='university name')),
                ('created_at', models.DateTimeField(auto_now_add=True, help_text='Timestamp when the account was created.', verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, help_text='Timestamp when the account was last updated.', verbose_name='updated at')),
                ('groups', models.ManyToManyField(blank=True, help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.', related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups')),
                ('user_permissions', models.ManyToManyField(blank=True, help_text='Specific permissions for this user.', related_name='user_set', related_query_name='user', to='auth.permission', verbose_name='user permissions')),
            ],
            options={
                'verbose_name': 'user',
                'verbose_name_plural': 'users',
                'ordering': ['-created_at'],
            },
            managers=[
                ('objects', django.contrib.auth.models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name='Product',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(help_text='Name of the product', max_length=200, verbose_name='name')),
                ('description', models.TextField(blank=True, default='', help_text='Detailed description of the product', verbose_name='description')),
                ('brand', models.CharField(blank=True, default='', max_length=100, verbose_name='brand')),
                ('category', models.CharField(blank=True, default='', max_length=100, verbose_name='category')),
                ('price', models.DecimalField(decimal_places=2, help_text='Price in USD (must be greater than 0)', max_digits=10, verbose_name='price')),
                ('product_available', models.BooleanField(default=True, help_text='Whether the product can still be bought', verbose_name='product available')),
                ('stock_quantity', models.PositiveIntegerField(default=1, help_text='Units left in stock', verbose_name='stock quantity')),
                ('image', models.ImageField(blank=True, help_text='Optional. Product picture (max 5MB, formats: jpg, png, webp).', null=True, upload_to=core.models.product_image_upload_path, validators=[core.validators.validate_product_image], verbose_name='image')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('seller', models.ForeignKey(help_text='User selling this product', on_delete=django.db.models.deletion.CASCADE, related_name='products', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'product',
                'verbose_name_plural': 'products',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['product_available'], name='product_available_idx'),
                    models.Index(fields=['category'], name='product_category_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Conversation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('status', models.CharField(choices=[('ACTIVE', 'Active'), ('BUYER_APPROVED', 'Buyer Approved'), ('SELLER_APPROVED', 'Seller Approved'), ('COMPLETED', 'Completed'), ('CANCELLED', 'Cancelled')], default='ACTIVE', help_text='Current approval status of the conversation', max_length=20, verbose_name='status')),
                ('created_at', models.DateTimeField(auto_now_add=True, help_text='Timestamp when the conversation was started', verbose_name='created at')),
                ('updated_at', models.DateTimeField(default=django.utils.timezone.now, help_text='Timestamp of the latest activity (message or status change)', verbose_name='updated at')),
                ('buyer', models.ForeignKey(help_text='User interested in buying the product', on_delete=django.db.models.deletion.CASCADE, related_name='buyer_conversations', to=settings.AUTH_USER_MODEL)),
                ('seller', models.ForeignKey(help_text='Owner of the product', on_delete=django.db.models.deletion.CASCADE, related_name='seller_conversations', to=settings.AUTH_USER_MODEL)),
                ('product', models.ForeignKey(help_text='Product being negotiated', on_delete=django.db.models.deletion.PROTECT, related_name='conversations', to='core.product')),
            ],
            options={
                'verbose_name': 'conversation',
                'verbose_name_plural': 'conversations',
                'ordering': ['-updated_at'],
                'indexes': [
                    models.Index(fields=['status'], name='conversation_status_idx'),
                    models.Index(fields=['updated_at'], name='conversation_updated_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('buyer', 'seller', 'product'), name='unique_conversation_per_buyer_seller_product'),
                    models.CheckConstraint(condition=models.Q(('buyer', models.F('seller')), _negated=True), name='conversation_buyer_not_seller'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Message',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('content', models.TextField(help_text='Message body', verbose_name='content')),
                ('message_type', models.CharField(choices=[('TEXT', 'Text'), ('SYSTEM_MESSAGE', 'System Message')], default='TEXT', max_length=20, verbose_name='message type')),
                ('sent_at', models.DateTimeField(default=django.utils.timezone.now, help_text='Timestamp when the message was sent', verbose_name='sent at')),
                ('is_read', models.BooleanField(default=False, help_text='Whether the recipient has opened the conversation since this message', verbose_name='is read')),
                ('conversation', models.ForeignKey(help_text='Conversation this message belongs to', on_delete=django.db.models.deletion.CASCADE, related_name='messages', to='core.conversation')),
                ('sender', models.ForeignKey(blank=True, help_text='Author of the message; empty for system messages', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='sent_messages', to=settings.AUTH_USER_MODEL)),
                ('triggered_by', models.ForeignKey(blank=True, help_text='For system messages, the participant whose action produced it', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='triggered_messages', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'message',
                'verbose_name_plural': 'messages',
                'ordering': ['sent_at', 'id'],
                'indexes': [
                    models.Index(fields=['conversation', 'sent_at'], name='message_conv_sent_idx'),
                    models.Index(fields=['conversation', 'is_read'], name='message_conv_read_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Order',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('total_amount', models.DecimalField(decimal_places=2, help_text='Product price at completion time', max_digits=10, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))], verbose_name='total amount')),
                ('order_date', models.DateTimeField(default=django.utils.timezone.now, verbose_name='order date')),
                ('completed_at', models.DateTimeField(blank=True, help_text='Timestamp when both parties approved', null=True, verbose_name='completed at')),
                ('user', models.ForeignKey(help_text='Buyer who purchased the product', on_delete=django.db.models.deletion.CASCADE, related_name='orders', to=settings.AUTH_USER_MODEL)),
                ('conversation', models.OneToOneField(help_text='Conversation that produced this order', on_delete=django.db.models.deletion.PROTECT, related_name='order', to='core.conversation')),
            ],
            options={
                'verbose_name': 'order',
                'verbose_name_plural': 'orders',
                'ordering': ['-order_date'],
                'indexes': [
                    models.Index(fields=['order_date'], name='order_date_idx'),
                ],
            },
        ),
    ]
