import os
import sys
import django
import random
from decimal import Decimal
from faker import Faker

# Add project root to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set up Django environment
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'student_marketplace.settings')
django.setup()

from core import services
from core.exceptions import ConversationError
from core.models import User, Product

fake = Faker()

def create_users(num_users=20):
    print(f"Creating {num_users} users...")

    users = []

    for _ in range(num_users):
        email = fake.unique.email()
        username = email.split('@')[0][:30]
        user = User.objects.create_user(
            username=username,
            email=email,
            password='password123',
            first_name=fake.first_name(),
            last_name=fake.last_name(),
            phone_number=fake.numerify('+1 ###-###-####'),
            university_name=fake.company()
        )
        users.append(user)

    print(f"Created {len(users)} users.")
    return users

def create_products(users):
    print("Creating products...")
    products = []

    categories = ['furniture', 'appliances', 'electronics', 'books', 'clothing', 'other']

    product_names = [
        "Sofa", "Dining Table", "Study Desk", "Office Chair", "Bed Frame",
        "Bookshelf", "Microwave", "Mini Fridge", "Lamp", "Laptop", "Calculus Textbook"
    ]

    for user in users:
        # Each user sells 0-3 products
        num_products = random.randint(0, 3)

        for _ in range(num_products):
            name = random.choice(product_names)
            product = Product.objects.create(
                seller=user,
                name=f"{random.choice(['Vintage', 'Modern', 'Used', 'Brand New'])} {name}",
                description=fake.text(),
                brand=fake.company(),
                category=random.choice(categories),
                price=Decimal(random.uniform(10.0, 300.0)).quantize(Decimal('0.01')),
                stock_quantity=random.randint(1, 3)
            )
            products.append(product)

    print(f"Created {len(products)} products.")
    return products

def create_conversations(users, products):
    print("Creating conversations...")
    conversations = []

    for product in products:
        # 0-2 interested buyers per product
        candidates = [u for u in users if u.pk != product.seller_id]
        for buyer in random.sample(candidates, min(len(candidates), random.randint(0, 2))):
            try:
                conversation, _created = services.initiate_conversation(product.id, buyer)
            except ConversationError as e:
                print(f"  Skipped {buyer.username} -> {product.name}: {e.message}")
                continue

            for _ in range(random.randint(1, 5)):
                sender = random.choice([conversation.buyer, conversation.seller])
                services.send_message(conversation.id, fake.sentence(), sender)

            conversations.append(conversation)

    print(f"Created {len(conversations)} conversations.")
    return conversations

def drive_approvals(conversations):
    print("Approving and cancelling some conversations...")
    completed = 0
    cancelled = 0

    for conversation in conversations:
        outcome = random.choice(['leave', 'buyer_approves', 'complete', 'cancel'])

        try:
            if outcome == 'buyer_approves':
                services.approve_transaction(conversation.id, conversation.buyer)
            elif outcome == 'complete':
                services.approve_transaction(conversation.id, conversation.seller)
                services.approve_transaction(conversation.id, conversation.buyer)
                completed += 1
            elif outcome == 'cancel':
                services.cancel_conversation(conversation.id, random.choice([conversation.buyer, conversation.seller]))
                cancelled += 1
        except ConversationError as e:
            # Product already sold through another conversation
            print(f"  Conversation {conversation.id}: {e.message}")

    print(f"Completed {completed} and cancelled {cancelled} conversations.")

def main():
    print("Starting database population...")

    # Create Users
    users = create_users(num_users=20)

    # Create Products
    products = create_products(users)

    # Create Conversations and Messages
    conversations = create_conversations(users, products)

    # Approve / Cancel
    drive_approvals(conversations)

    print("Database population completed successfully!")

if __name__ == '__main__':
    main()
